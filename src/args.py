"""Argument parsing functionality for npm-serve."""

import argparse
from constants import Constants


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog=Constants.PROGRAM_NAME,
        description=(
            "npm-serve - serve files out of npm packages through a local cache"
        ),
        add_help=True,
    )

    parser.add_argument("DOCUMENT_ROOT",
                        help="Directory of static files to serve under / (optional)",
                        nargs="?",
                        default=None)
    parser.add_argument("-V", "--version",
                        action="version",
                        version=f"%(prog)s {Constants.VERSION}")
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Suppress the startup banner.",
                        action="store_true")
    parser.add_argument("-H", "--host",
                        dest="HOST",
                        help=f"Address to bind to (default: {Constants.DEFAULT_HOST})",
                        action="store", type=str)
    parser.add_argument("-p", "--port",
                        dest="PORT",
                        help=f"Port to listen to for requests (default: {Constants.DEFAULT_PORT})",
                        action="store", type=int)
    parser.add_argument("-s", "--storage",
                        dest="STORAGE",
                        help=f"Location to store packages (default: {Constants.DEFAULT_STORAGE})",
                        action="store", type=str)
    parser.add_argument("-r", "--registry",
                        dest="REGISTRY",
                        help=f"Upstream npm registry (default: {Constants.REGISTRY_URL_NPM})",
                        action="store", type=str)
    parser.add_argument("-P", "--prefix",
                        dest="PREFIX",
                        help=f"Prefix for serving packages (default: {Constants.DEFAULT_PREFIX})",
                        action="store", type=str)
    parser.add_argument("-C", "--cors",
                        dest="CORS",
                        help="Enable sending CORS headers.",
                        action="store_true")
    parser.add_argument("-O", "--cors-origin",
                        dest="CORS_ORIGIN",
                        help="Value of Access-Control-Allow-Origin (default: the request's Origin)",
                        action="store", type=str)
    parser.add_argument("-M", "--max-age",
                        dest="MAX_AGE",
                        help=f"max-age header to send to the browser (default: {Constants.DEFAULT_MAX_AGE})",
                        action="store", type=int)
    parser.add_argument("-U", "--npm-update-interval",
                        dest="UPDATE_INTERVAL",
                        help=("Seconds before cached metadata is refreshed from the registry "
                              f"(default: {Constants.DEFAULT_UPDATE_INTERVAL})"),
                        action="store", type=float)
    parser.add_argument("--timeout",
                        dest="TIMEOUT",
                        help=f"Upstream request timeout in seconds (default: {Constants.REQUEST_TIMEOUT})",
                        action="store", type=int)
    parser.add_argument("--download-timeout",
                        dest="DOWNLOAD_TIMEOUT",
                        help=("Seconds a request waits for another request's archive download "
                              f"(default: {Constants.DOWNLOAD_WAIT_TIMEOUT})"),
                        action="store", type=float)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="YAML file with a 'serve' section of default settings",
                        action="store", type=str)
    parser.add_argument("-L", "--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=Constants.LOG_LEVELS,
                        default=None)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)

    return parser.parse_args(argv)
