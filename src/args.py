"""Argument parsing functionality for depresolve."""

import argparse


def _add_common(parser):
    parser.add_argument("-s", "--settings",
                        dest="SETTINGS",
                        help="Path to settings file (YAML, YML, or JSON)",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)


def _add_resolve_options(parser):
    parser.add_argument("-c", "--conf",
                        dest="CONFS",
                        help="Configuration(s) to resolve, comma separated or repeated (default: *)",
                        action="append",
                        type=str,
                        default=[])
    parser.add_argument("--resolve-id",
                        dest="RESOLVE_ID",
                        help="Identifier correlating this resolution with later cachepath/report calls",
                        action="store",
                        type=str)
    parser.add_argument("--no-transitive",
                        dest="TRANSITIVE",
                        help="Only resolve direct dependencies.",
                        action="store_false")
    parser.add_argument("--no-halt",
                        dest="HALT_ON_FAILURE",
                        help="Report unresolved dependencies and failed downloads without failing.",
                        action="store_false")
    parser.add_argument("--no-validate",
                        dest="VALIDATE",
                        help="Do not validate revision constraints before resolving.",
                        action="store_false")
    parser.add_argument("--resolver",
                        dest="RESOLVER",
                        help="Name of the settings resolver to use (default: settings default)",
                        action="store",
                        type=str)

    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("-f", "--file",
                        dest="DESCRIPTOR",
                        help="Module descriptor to resolve (ivy.xml or pom.xml)",
                        action="store",
                        type=str)
    target.add_argument("-m", "--module",
                        dest="INLINE",
                        help="Resolve a single module inline: organisation/module/revision or org#module;rev",
                        action="store",
                        type=str)


def build_parser():
    """Builds the command line parser."""
    parser = argparse.ArgumentParser(
        prog="depresolve",
        description="depresolve - transitive dependency resolver with a local artifact cache",
        add_help=True,
    )
    subparsers = parser.add_subparsers(dest="COMMAND", metavar="command")
    subparsers.required = True

    resolve = subparsers.add_parser("resolve", help="Resolve dependencies and populate the cache")
    _add_common(resolve)
    _add_resolve_options(resolve)
    resolve.add_argument("-o", "--output",
                         dest="OUTPUT",
                         help="Path to output file (JSON or XML)",
                         action="store",
                         type=str)
    resolve.add_argument("--format",
                         dest="OUTPUT_FORMAT",
                         help="Output format (json or xml). If not specified, inferred from --output extension; "
                              "defaults to json.",
                         action="store",
                         type=str.lower,
                         choices=['json', 'xml'])
    resolve.add_argument("--trace",
                         dest="TRACE",
                         help="Include every location tried by the resolvers in the JSON output.",
                         action="store_true")

    cachepath = subparsers.add_parser("cachepath", help="Resolve and print the local paths of the artifacts")
    _add_common(cachepath)
    _add_resolve_options(cachepath)
    cachepath.add_argument("--separator",
                           dest="SEPARATOR",
                           help="Path separator used when printing (default: os.pathsep)",
                           action="store",
                           type=str)

    listing = subparsers.add_parser("list", help="List module revisions available in a resolver")
    _add_common(listing)
    listing.add_argument("--organisation", "--org",
                         dest="ORGANISATION",
                         help="Organisation glob (default: *)",
                         action="store",
                         type=str,
                         default="*")
    listing.add_argument("--module",
                         dest="MODULE",
                         help="Module glob (default: *)",
                         action="store",
                         type=str,
                         default="*")
    listing.add_argument("--revision",
                         dest="REVISION",
                         help="Revision glob (default: *)",
                         action="store",
                         type=str,
                         default="*")
    listing.add_argument("--resolver",
                         dest="RESOLVER",
                         help="Name of the settings resolver to list (default: settings default)",
                         action="store",
                         type=str)

    clean = subparsers.add_parser("clean-cache", help="Delete the whole artifact cache")
    _add_common(clean)
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
