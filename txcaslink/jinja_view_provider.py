# Standard library
import sys
from textwrap import dedent

# Application modules
from txcaslink.constants import VIEW_INSUFFICIENT, VIEW_AUTH_FAILED, \
                        VIEW_INVALID_SERVICE, VIEW_ERROR_5XX, VIEW_NOT_FOUND
from txcaslink.exceptions import ViewNotImplementedError
from txcaslink.interface import IViewProvider, IViewProviderFactory
import txcaslink.settings
import txcaslink.utils

# External modules
from jinja2 import Environment, FileSystemLoader
from jinja2.exceptions import TemplateNotFound
from twisted.plugin import IPlugin
from twisted.python import log
from zope.interface import implementer


@implementer(IPlugin, IViewProviderFactory)
class Jinja2ViewProviderFactory(object):
    """
    """
    tag = "jinja2_view_provider"

    opt_help = dedent('''\
            A view provider based on jinja2 templates.
            Templates are looked up in `template_folder`:

            - insufficient.jinja2
            - auth_failed.jinja2
            - invalid_service.jinja2
            - error5xx.jinja2
            - not_found.jinja2

            A missing template falls back to the built-in page.
            Valid options include:

            - template_folder
            ''')

    opt_usage = '''A colon-separated key=value list.'''

    def generateViewProvider(self, argstring=""):
        """
        """
        scp = txcaslink.settings.load_settings('caslink', syspath='/etc/caslink')
        settings = txcaslink.settings.export_settings_to_dict(scp)
        config = settings.get('Jinja2ViewProvider', {})
        config.update(txcaslink.settings.parse_argstring(argstring))
        buf = ["[CONFIG][Jinja2ViewProvider] Settings:"]
        for k in sorted(config.keys()):
            v = config[k]
            buf.append(" - %s: %s" % (k, v))
        sys.stderr.write('\n'.join(buf))
        sys.stderr.write('\n')
        missing = txcaslink.utils.get_missing_args(
                    Jinja2ViewProvider.__init__, config, ['self'])
        if len(missing) > 0:
            sys.stderr.write(
                "[ERROR][Jinja2ViewProvider] "
                "Missing the following settings: %s" % ', '.join(missing))
            sys.stderr.write('\n')
            sys.exit(1)

        txcaslink.utils.filter_args(Jinja2ViewProvider.__init__, config, ['self'])
        return Jinja2ViewProvider(**config)


@implementer(IViewProvider)
class Jinja2ViewProvider(object):
    """
    A view provider based on Jinja2 templates.
    """

    template_map = {
        VIEW_INSUFFICIENT: 'insufficient.jinja2',
        VIEW_AUTH_FAILED: 'auth_failed.jinja2',
        VIEW_INVALID_SERVICE: 'invalid_service.jinja2',
        VIEW_ERROR_5XX: 'error5xx.jinja2',
        VIEW_NOT_FOUND: 'not_found.jinja2',
        }

    def __init__(self, template_folder):
        self._template_folder = template_folder
        self._loader = FileSystemLoader(template_folder)
        self._env = Environment(autoescape=True)
        self._debug = False

    def debug(self, msg):
        if self._debug:
            log.msg("[DEBUG][Jinja2ViewProvider] %s" % msg)

    def _renderTemplate(self, view_type, **kwds):
        env = self._env
        name = self.template_map[view_type]
        try:
            templ = self._loader.load(env, name)
        except TemplateNotFound:
            raise ViewNotImplementedError("The template '%s' was not found." % name)
        self.debug("Rendering '%s'." % name)
        return templ.render(**kwds).encode('utf-8')

    def renderInsufficient(self, request):
        return self._renderTemplate(
                        VIEW_INSUFFICIENT,
                        request=request)

    def renderAuthFailed(self, err, request):
        return self._renderTemplate(
                        VIEW_AUTH_FAILED,
                        err=err,
                        request=request)

    def renderInvalidService(self, service, request):
        request.setResponseCode(403)
        return self._renderTemplate(
                        VIEW_INVALID_SERVICE,
                        service=service,
                        request=request)

    def renderError5xx(self, err, request):
        request.setResponseCode(500)
        return self._renderTemplate(
                        VIEW_ERROR_5XX,
                        err=err,
                        request=request)

    def renderNotFound(self, request):
        request.setResponseCode(404)
        return self._renderTemplate(
                        VIEW_NOT_FOUND,
                        request=request)

    def provideView(self, view_type):
        """
        """
        views = {
            VIEW_INSUFFICIENT: self.renderInsufficient,
            VIEW_AUTH_FAILED: self.renderAuthFailed,
            VIEW_INVALID_SERVICE: self.renderInvalidService,
            VIEW_ERROR_5XX: self.renderError5xx,
            VIEW_NOT_FOUND: self.renderNotFound,
        }
        return views.get(view_type, None)
