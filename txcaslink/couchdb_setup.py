#! /usr/bin/env python

# Standard library
import getpass
import json
import sys

# Application modules
from txcaslink.exceptions import CouchDBError
from txcaslink.http import createHTTPClient
from txcaslink.utils import http_status_filter

# External modules
import treq
from twisted.internet import defer
from twisted.internet.task import react


# The ticket store reads `_id`, `_rev`, `value` and `expires` from the
# rows of `get_ticket`.
DESIGN_DOC = {
    'language': 'javascript',
    'views': {
        "get_ticket": {
            "map": "function(doc) {\n  emit(doc['ticket_id'], doc);\n}"
        },
        "get_by_expires": {
            "map": "function(doc) {\n    emit(doc['expires'], doc['ticket_id']);\n}"
        },
    },
}


@defer.inlineCallbacks
def create_ticket_database(http, url, admin, passwd):
    """
    Create the ticket database at `url` and its `views` design document.
    Existing databases and design documents are left alone.

    @return: A deferred that fires with a list of status lines.
    """
    auth = (admin, passwd)
    report = []
    #201 - created, 412 - exists
    resp = yield http.put(url, auth=auth)
    resp = yield http_status_filter(
        resp, [(201, 201), (412, 412)], CouchDBError,
        msg="Could not create database.")
    yield treq.content(resp)
    if resp.code == 412:
        report.append("Database already exists.")
    else:
        report.append("Created database.")
    #201 - created, 409 - exists
    resp = yield http.put(
        url + '/_design/views', auth=auth, data=json.dumps(DESIGN_DOC))
    resp = yield http_status_filter(
        resp, [(201, 201), (409, 409)], CouchDBError,
        msg="Could not create design document 'views'.")
    yield treq.content(resp)
    if resp.code == 409:
        report.append("Design document 'views' already exists.")
    else:
        report.append("Created design document 'views'.")
    return report

def prompt(label, check=None):
    while True:
        value = input(label).strip()
        if value == "":
            continue
        if check is not None:
            try:
                value = check(value)
            except ValueError:
                continue
        return value

def main():
    is_https = ""
    while is_https not in ('y', 'n'):
        is_https = input("Use HTTPS [Yn]? ").strip().lower()
        if is_https == "":
            is_https = "y"
    is_https = (is_https == "y")
    verify_cert = True
    if is_https:
        verify_cert = (input("Verify certificate [Yn]? ").strip().lower() != "n")
    host = prompt("CouchDB Server: ")
    port = prompt("CouchDB Port: ", int)
    db = prompt("Database Name: ")
    admin = prompt("Admin User: ")
    passwd = ""
    confirm = None
    while passwd != confirm:
        passwd = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm Password: ")
    if is_https:
        scheme = "https"
    else:
        scheme = "http"
    url = "%s://%s:%d/%s" % (scheme, host, port, db)
    print("Create Database")
    print("URL => %s" % url)
    yesno = input("Continue [yN]? ")
    if yesno.strip().lower() != "y":
        sys.exit(1)

    def report(lines):
        for line in lines:
            print(line)

    def perform_task(reactor):
        http = createHTTPClient(reactor, verify_cert=verify_cert)
        d = create_ticket_database(http, url, admin, passwd)
        d.addCallback(report)
        return d

    react(perform_task)

if __name__ == "__main__":
    main()
