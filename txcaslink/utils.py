
# Standard library
import inspect
from urllib.parse import urlencode

# Application modules
from txcaslink.exceptions import BadRequestError

# External modules
from twisted.python import log
import treq


html_escape_table = {
    "&": "&amp;",
    '"': "&quot;",
    "'": "&apos;",
    ">": "&gt;",
    "<": "&lt;",
    }

def escape_html(text):
    """Produce entities within text."""
    return "".join(html_escape_table.get(c,c) for c in text)

def http_status_filter(response, allowed, ex, msg=None, include_resp_text=True):
    """
    Checks the response status and determines if it is in one of the
    allowed ranges.  If not, it raises `ex()`.

    `ex` is a callable that results in an Exception to be raised,
        (typically an exception class).
    `allowed` is a sequence of (start, end) valid status ranges.
    """
    code = response.code
    in_range = False
    for start_range, end_range in allowed:
        if code >= start_range and code <= end_range:
            in_range = True
            break
    if not in_range:
        def raise_error(body, ex):
            ex_msg = []
            if msg is not None:
                ex_msg.append(msg)
            if include_resp_text and body:
                ex_msg.append(body.decode('utf-8', 'replace'))
            text = '\n'.join(ex_msg)
            if text != "":
                raise ex(text)
            else:
                raise ex()
        # The body must still be delivered or the connection may hang.
        d = treq.content(response)
        d.addCallback(raise_error, ex)
        return d
    return response

def get_missing_args(func, provided, exclude=None):
    """
    Names of the required arguments of `func` not present in `provided`.
    """
    if exclude is None:
        exclude = set([])
    argspec = inspect.getfullargspec(func)
    defaults = argspec.defaults or []
    defaults_count = len(defaults)
    if defaults_count > 0:
        required = argspec.args[:-defaults_count]
    else:
        required = argspec.args
    missing = [arg for arg in required if not arg in provided and arg not in exclude]
    return missing

def filter_args(func, provided, exclude=None):
    """
    Removes keys from mapping `provided` that are not included in the
    arglist for `func`.
    """
    if exclude is None:
        exclude = set([])
    arg_set = set([x for x in inspect.getfullargspec(func).args if x not in exclude])
    for k in list(provided.keys()):
        if not k in arg_set:
            del provided[k]

def format_plugin_help_list(factories, stm):
    """
    Show plugin list with brief usage.
    """
    # Figure out the right width for our columns
    firstLength = 0
    for factory in factories:
        if len(factory.tag) > firstLength:
            firstLength = len(factory.tag)
    formatString = '  %%-%is\t%%s\n' % firstLength
    stm.write(formatString % ('Plugin', 'ArgString format'))
    stm.write(formatString % ('======', '================'))
    for factory in factories:
        stm.write(
            formatString % (factory.tag, factory.opt_usage))
    stm.write('\n')


#=======================================================================
# Request helpers
#=======================================================================

def _decode(value, errors='strict'):
    if isinstance(value, bytes):
        return value.decode('utf-8', errors)
    return value

def get_single_param_or_default(request, param, default=None):
    """
    Checks to make sure there is *exactly* one parameter, `param` in
    request.args and returns its value.

    Query string and form body parameters are both present in
    `request.args`.

    If the named parameter does not exist, return `default`.

    If the named parameter exists multiple times, this
    function raises a txcaslink.exceptions.BadRequestError.
    So does a value that is not valid UTF-8.
    """
    args = request.args
    key = param.encode('utf-8')
    if key in args:
        value_list = args[key]
    elif param in args:
        value_list = args[param]
    else:
        return default
    if len(value_list) != 1:
        raise BadRequestError("Multiple values for parameter '%s' were provided." % param)
    try:
        return _decode(value_list[0])
    except UnicodeDecodeError:
        raise BadRequestError("The parameter '%s' is not valid UTF-8." % param)

def redirect(request, url):
    """
    Redirect the request to `url` (a str).
    """
    if not isinstance(url, bytes):
        url = url.encode('utf-8')
    request.redirect(url)

def set_content_type(request, content_type):
    request.setHeader(b'content-type', content_type.encode('ascii'))

def get_request_url(request):
    """
    Reconstruct the absolute URL of the request, without its query string.
    """
    if request.isSecure():
        scheme = 'https'
    else:
        scheme = 'http'
    netloc = request.getHeader('host')
    if not netloc:
        host = request.getHost()
        netloc = "%s:%d" % (host.host, host.port)
    return "%s://%s%s" % (scheme, netloc, _decode(request.path))

def get_request_uri(request):
    return _decode(request.uri)

def add_query_params(url, params):
    """
    Append `params` (a list of pairs) to the query string of `url`.
    """
    query = urlencode(params)
    if '?' in url:
        return url + '&' + query
    return url + '?' + query


#=======================================================================
# Logging
#=======================================================================

def log_cas_event(label, attribs):
    """
    Log a CAS event.
    """
    parts = []
    for k,v in attribs:
        parts.append('''%s="%s"''' % (k, v))
    tail = ' '.join(parts)
    log.msg('''[INFO][CAS] label="%s" %s''' % (label, tail))

def log_http_event(request, redact_args=None):
    """
    Log an incoming request, masking the values of `redact_args`.
    """
    args = {}
    for k, v in request.args.items():
        args[_decode(k, 'replace')] = [_decode(x, 'replace') for x in v]
    if redact_args is not None:
        for arg in redact_args:
            if arg in args:
                args[arg] = ['*******']
    msg = '''[INFO][HTTP] method="%(method)s" path="%(path)s" args="%(args)s"''' % {
        'path': _decode(request.path, 'replace'),
        'method': _decode(request.method),
        'args': args,
        }
    log.msg(msg)

def log_failure(err, request):
    """
    Log a failure that will become an internal error response.
    """
    log.msg('[ERROR] type="error" client_ip="%s" uri="%s"' % (
        request.getClientIP(), get_request_uri(request)))
    log.err(err)
    return err
