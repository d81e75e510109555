"""depresolve command line entry point."""

import logging
import os
import sys

from args import parse_args
from constants import ExitCodes
from common.errors import (
    CacheError,
    CycleError,
    DepResolveError,
    InputError,
    ResolutionError,
    TransportError,
)
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from engine import DependencyManager, ResolveOptions
from module import ModuleRevisionId
from report.json_export import export_json
from report.xml_writer import XmlReportWriter
from settings import load_settings

logger = logging.getLogger(__name__)


def _confs(values):
    confs = [c.strip() for value in values or [] for c in value.split(",") if c.strip()]
    return confs or ["*"]


def _options(args):
    return ResolveOptions(
        confs=_confs(args.CONFS),
        transitive=args.TRANSITIVE,
        validate=args.VALIDATE,
        resolve_id=args.RESOLVE_ID,
        halt_on_failure=args.HALT_ON_FAILURE,
    )


def _manager(args):
    settings = load_settings(args.SETTINGS)
    resolver = settings.get_resolver(args.RESOLVER) if getattr(args, "RESOLVER", None) else None
    return DependencyManager(settings, resolver=resolver)


def run_resolve(manager, args):
    """Resolve a descriptor file or an inline module."""
    options = _options(args)
    if args.INLINE:
        mrid = ModuleRevisionId.parse(args.INLINE)
        return manager.resolve_inline(mrid.organisation, mrid.name, mrid.revision,
                                      confs=options.confs, branch=mrid.branch, options=options)
    return manager.resolve(args.DESCRIPTOR, options)


def write_output(result, args):
    """Writes the result to --output in the requested or inferred format."""
    output = getattr(args, "OUTPUT", None)
    fmt = getattr(args, "OUTPUT_FORMAT", None)
    if fmt is None and output and output.lower().endswith(".xml"):
        fmt = "xml"
    fmt = fmt or "json"
    if fmt == "xml":
        writer = XmlReportWriter()
        for conf in result.configuration_names:
            if output:
                base, ext = os.path.splitext(output)
                path = output if len(result.configuration_names) == 1 else f"{base}-{conf}{ext or '.xml'}"
                writer.write(result, conf, path)
            else:
                sys.stdout.write(writer.to_bytes(result, conf).decode("utf-8"))
                sys.stdout.write("\n")
        return
    text = export_json(result, output, include_trace=getattr(args, "TRACE", False))
    if not output:
        print(text)


def main(argv=None):
    """Main function of the program; returns the process exit code."""
    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL, args.LOG_FILE)
    if is_debug_enabled(logger):
        logger.debug("CLI start", extra=extra_context(event="function_entry", component="cli",
                                                       action=args.COMMAND))
    result = None
    try:
        manager = _manager(args)
        if args.COMMAND == "clean-cache":
            manager.clean_cache()
        elif args.COMMAND == "list":
            for mrid in manager.list_modules(args.ORGANISATION, args.MODULE, args.REVISION,
                                             resolver=args.RESOLVER):
                print(f"{mrid.organisation}/{mrid.name}/{mrid.revision}")
        else:
            result = run_resolve(manager, args)
            if args.COMMAND == "cachepath":
                separator = args.SEPARATOR if args.SEPARATOR is not None else os.pathsep
                print(separator.join(manager.cache_path(result.resolve_id)))
            else:
                write_output(result, args)
    except ResolutionError as exc:
        logger.error("%s", exc)
        for problem in exc.problems:
            logger.error("\t%s", problem)
        return ExitCodes.RESOLVE_FAILED.value
    except InputError as exc:
        logger.error("Invalid input: %s", exc)
        return ExitCodes.INPUT_ERROR.value
    except TransportError as exc:
        logger.error("Repository error: %s", exc)
        return ExitCodes.CONNECTION_ERROR.value
    except CacheError as exc:
        logger.error("Cache error: %s", exc)
        return ExitCodes.CACHE_ERROR.value
    except CycleError as exc:
        logger.error("%s", exc)
        return ExitCodes.RESOLVE_FAILED.value
    except OSError as exc:
        logger.error("File error: %s", exc)
        return ExitCodes.FILE_ERROR.value
    except DepResolveError as exc:
        logger.error("%s", exc)
        return ExitCodes.RESOLVE_FAILED.value
    if result is not None and result.has_error:
        logger.warning("Resolution finished with problems.")
    return ExitCodes.SUCCESS.value


def cli():
    """Console script wrapper."""
    sys.exit(main())


if __name__ == "__main__":
    cli()
