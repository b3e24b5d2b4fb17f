"""CLI entrypoint for source-minimizer."""

from __future__ import annotations

import argparse
import dataclasses
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List

from . import config as config_module, forkserver, language as language_module, minimizer


def _parse_args(args: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="source-minimizer",
        description="Reduce source files while a user-defined property keeps holding.",
        epilog=f"Available languages: {', '.join(language_module.supported_languages())}",
    )
    parser.add_argument("--config", default=None, help="Path to YAML configuration file")
    parser.add_argument("--language", "-l", default=None, help="Source code language")
    parser.add_argument("--charset", "--encoding", "-e", default=None, help="Encoding of the source files")
    parser.add_argument(
        "--input-file",
        "-i",
        action="append",
        default=None,
        help="Original file that should be minimized, or @list of such files",
    )
    parser.add_argument(
        "--output-file",
        "-o",
        action="append",
        default=None,
        help="Output file (used as a scratch file, too), or @list of such files",
    )
    parser.add_argument("--strategy", "-S", default=None, help="Minimization strategy (greedy, query)")
    parser.add_argument("--query-expression", default=None, help="Query selecting subtrees to drop")
    parser.add_argument("--invariant", "-I", default=None, help="Invariant to preserve (dummy, exitcode, message)")
    parser.add_argument("--command-line", default=None, help="Command line checking the scratch files")
    parser.add_argument(
        "--forkserver",
        action="store_true",
        default=None,
        help="Run the command under a fork server (Linux only)",
    )
    parser.add_argument(
        "--forkserver-child-timeout",
        type=int,
        default=None,
        help="Timeout in seconds for each child spawned by the fork server",
    )
    parser.add_argument("--min-return", type=int, default=None, help="Minimum exit code value (inclusive)")
    parser.add_argument("--max-return", type=int, default=None, help="Maximum exit code value (inclusive)")
    parser.add_argument(
        "--exact-return",
        type=int,
        default=None,
        help="Expect this specific exit code only (implies min == max)",
    )
    parser.add_argument("--printed-message", default=None, help="Message that should be printed by the command")
    parser.add_argument(
        "--no-validate-nodes",
        dest="validate_nodes",
        action="store_false",
        default=None,
        help="Do not skip nodes with an empty or inverted source range",
    )
    parser.add_argument("--log-dir", default=None, help="Directory for structured run logs")
    parser.add_argument("--log-stream", action="store_true", default=None, help="Echo run events to stdout")
    return parser.parse_args(list(args) if args is not None else None)


def expand_file_list(values: Iterable[str]) -> List[str]:
    """Expand ``@path`` entries into the non-empty lines of the file they name."""

    result: List[str] = []
    for value in values:
        if value.startswith("@"):
            list_path = Path(value[1:])
            try:
                lines = list_path.read_text().splitlines()
            except OSError as exc:
                raise config_module.ConfigurationError(f"Cannot read file list {list_path}: {exc}") from exc
            result.extend(line.strip() for line in lines if line.strip())
        else:
            result.append(value)
    return result


def _overrides(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def build_config(ns: argparse.Namespace) -> config_module.Config:
    """Merge command line options onto the configuration file."""

    cfg = config_module.Config.load(ns.config)

    if ns.input_file is not None or ns.output_file is not None:
        inputs = expand_file_list(ns.input_file or [])
        outputs = expand_file_list(ns.output_file or [])
        if len(inputs) != len(outputs):
            raise config_module.ConfigurationError(
                "Input and output file lists must have the same length "
                f"({len(inputs)} inputs, {len(outputs)} outputs)."
            )
        files = tuple(config_module.FileMapping(input=i, output=o) for i, o in zip(inputs, outputs))
        cfg = dataclasses.replace(cfg, files=files)

    strategy = dataclasses.replace(
        cfg.strategy,
        **_overrides({"name": ns.strategy, "query": ns.query_expression}),
    )
    invariant = dataclasses.replace(
        cfg.invariant,
        **_overrides(
            {
                "name": ns.invariant,
                "command_line": ns.command_line,
                "forkserver": ns.forkserver,
                "forkserver_child_timeout": ns.forkserver_child_timeout,
                "min_return": ns.min_return,
                "max_return": ns.max_return,
                "exact_return": ns.exact_return,
                "message": ns.printed_message,
            }
        ),
    )
    logging_cfg = dataclasses.replace(
        cfg.logging,
        **_overrides({"dir": ns.log_dir, "stream": ns.log_stream}),
    )
    return dataclasses.replace(
        cfg,
        strategy=strategy,
        invariant=invariant,
        logging=logging_cfg,
        **_overrides({"language": ns.language, "charset": ns.charset, "validate_nodes": ns.validate_nodes}),
    )


def main(argv: Iterable[str] | None = None) -> int:
    ns = _parse_args(argv)
    try:
        cfg = build_config(ns)
        cfg.validate()
        scm = minimizer.SourceCodeMinimizer(cfg)
        scm.run_minimization()
    except config_module.ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except (minimizer.ReductionAborted, forkserver.ForkServerError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
