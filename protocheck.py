#!/usr/bin/env python3
"""
protocheck - Prototype / definition consistency gate for C sources

High-level goals:
- Normalize C sources into a line stream (comments, literal contents and
  function bodies elided, file boundaries marked with `#<line> "<path>"`)
- Classify every line as a prototype, a function definition header, or neither
- Record prototypes and definitions by function name
- Stop at the first inconsistency with a dedicated exit code

Exit codes:
  0  all prototypes and definitions are consistent
  1  duplicate prototype, textually identical to the prior one
  2  duplicate prototype, textually different from the prior one
  3  prototype for a function that was already defined
  4  function definition not matching its prototype
  5  function defined more than once

Any repeated prototype or definition is fatal, even when both lines are
identical. The check is stricter than what a compiler accepts, which is what
a pre-build gate for a small embedded library wants.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, TextIO, Tuple, Union
import argparse
import glob
import json
import os
import re
import shlex
import subprocess
import sys
import tempfile

import yaml

__version__ = "0.1.0"


# ============================================================
# ===================== RESULT CODES =========================
# ============================================================

EXIT_SUCCESS = 0
EXIT_DUPLICATE_PROTOTYPE = 1
EXIT_DUPLICATE_PROTOTYPE_MISMATCH = 2
EXIT_PROTOTYPE_AFTER_DEFINITION = 3
EXIT_DEFINITION_PROTOTYPE_MISMATCH = 4
EXIT_DUPLICATE_DEFINITION = 5

# Tool failures, kept clear of the five condition codes.
EXIT_TOOL_ERROR = 10
EXIT_USAGE = 64

CONDITION_NAMES: Dict[int, str] = {
    EXIT_DUPLICATE_PROTOTYPE: "DuplicatePrototype",
    EXIT_DUPLICATE_PROTOTYPE_MISMATCH: "DuplicatePrototypeMismatch",
    EXIT_PROTOTYPE_AFTER_DEFINITION: "PrototypeAfterDefinition",
    EXIT_DEFINITION_PROTOTYPE_MISMATCH: "DefinitionPrototypeMismatch",
    EXIT_DUPLICATE_DEFINITION: "DuplicateDefinition",
}

# Special function register storage classes per compiler dialect. Lines
# starting with one of these look like calls (`__sfr __at(0x80) P0;`).
DIALECT_STORAGE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "sdcc": ("__sfr", "__sfr16", "__sbit"),
    "c51": ("sfr", "sfr16", "sbit"),
}
DEFAULT_DIALECT = "sdcc"

NORMALIZER_ENV = "PROTOCHECK_NORMALIZER"
DEFAULT_CONFIG_NAME = "protocheck.yaml"


class ProtoCheckError(Exception):
    """Raised for tool problems: unreadable input, bad config, normalizer failure."""


def _log(message: str) -> None:
    sys.stderr.write(f"[protocheck] {message}\n")


# ============================================================
# ===================== DECLARATIONS =========================
# ============================================================

@dataclass(frozen=True)
class DeclarationRecord:
    """
    One prototype or definition header as it was read from the stream.
    """
    name: str
    signature_text: str
    source_file: str
    line: int = 0


@dataclass
class RunContext:
    """
    Everything a single check run owns: the current file as set by location
    markers and the two name-keyed registries. Records are only ever added.
    """
    storage_keywords: Tuple[str, ...] = DIALECT_STORAGE_KEYWORDS[DEFAULT_DIALECT]

    current_file: str = "<stdin>"
    next_line: int = 1
    files_seen: List[str] = field(default_factory=list)

    prototypes: Dict[str, DeclarationRecord] = field(default_factory=dict)
    definitions: Dict[str, DeclarationRecord] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.storage_keywords = tuple(self.storage_keywords)
        self._prototype_exclusions = _keyword_prefix_pattern(
            ("return", "else") + self.storage_keywords
        )
        self._definition_exclusions = _keyword_prefix_pattern(("else",))

    def excludes_prototype(self, line: str) -> bool:
        return self._prototype_exclusions.match(line) is not None

    def excludes_definition(self, line: str) -> bool:
        return self._definition_exclusions.match(line) is not None


def _keyword_prefix_pattern(keywords: Sequence[str]) -> "re.Pattern[str]":
    alternatives = "|".join(re.escape(kw) for kw in keywords if kw)
    return re.compile(rf"(?:{alternatives})\b")


# ============================================================
# ==================== FILENAME TRACKER ======================
# ============================================================

MARKER_PATTERN = re.compile(r'^#\s*(\d+)\s+"((?:[^"\\]|\\.)*)"')


def format_marker(line: int, path: str) -> str:
    escaped = path.replace("\\", "\\\\").replace('"', '\\"')
    return f'#{line} "{escaped}"'


def _unescape_marker_path(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text)


def track_marker(ctx: RunContext, line: str) -> bool:
    """
    Update the current file from a `#<line> "<path>"` marker.
    Returns False (and leaves the context alone) for any other line.
    """
    match = MARKER_PATTERN.match(line)
    if not match:
        return False
    ctx.current_file = _unescape_marker_path(match.group(2))
    ctx.next_line = int(match.group(1))
    if ctx.current_file not in ctx.files_seen:
        ctx.files_seen.append(ctx.current_file)
    return True


# ============================================================
# ================ DECLARATION CLASSIFIER ====================
# ============================================================

PROTOTYPE = "prototype"
DEFINITION = "definition"

# Type and qualifier tokens, each followed by whitespace or pointer stars.
_TYPE_TOKENS = r"(?:[A-Za-z_]\w*[\s*]+)+"
_FUNCTION_HEAD = _TYPE_TOKENS + r"\**[A-Za-z_]\w*\s*\([^;]*\)"
# e.g. `__reentrant`, `__interrupt(5)`, `__using(1)`
_TRAILING_QUALIFIERS = r"(?:\s+[A-Za-z_]\w*(?:\s*\([^()]*\))?)*\s*"

PROTOTYPE_PATTERN = re.compile(_FUNCTION_HEAD + _TRAILING_QUALIFIERS + ";")
DEFINITION_PATTERN = re.compile(_FUNCTION_HEAD + _TRAILING_QUALIFIERS)


def extract_key(text: str) -> str:
    """
    Bare function name: drop everything from the first `(` on, then
    everything up to the last whitespace or pointer star.
    """
    head = text.split("(", 1)[0].rstrip()
    return re.split(r"[\s*]", head)[-1]


def classify_line(ctx: RunContext, line: str) -> Optional[Tuple[str, str]]:
    """
    Shape-match a trimmed, non-marker line.

    Returns (PROTOTYPE | DEFINITION, signature_text) or None. Prototype text
    ends before the terminating `;` so it compares equal to the matching
    definition header.
    """
    if not line:
        return None

    match = PROTOTYPE_PATTERN.search(line)
    if match:
        if ctx.excludes_prototype(line):
            return None
        return PROTOTYPE, line[: match.end() - 1].rstrip()

    if ";" in line or ctx.excludes_definition(line):
        return None
    if DEFINITION_PATTERN.fullmatch(line):
        return DEFINITION, line
    return None


# ============================================================
# =================== CONFLICT RESOLVER ======================
# ============================================================

class FatalCondition(Exception):
    """
    First inconsistency found by the resolver. Carries the result code,
    the record being processed and the prior record it conflicts with.
    """

    def __init__(
        self,
        code: int,
        message: str,
        record: DeclarationRecord,
        prior: DeclarationRecord,
        prior_label: str,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.record = record
        self.prior = prior
        self.prior_label = prior_label

    @property
    def condition(self) -> str:
        return CONDITION_NAMES[self.code]


def resolve_prototype(ctx: RunContext, record: DeclarationRecord) -> None:
    prior = ctx.prototypes.get(record.name)
    if prior is not None:
        if prior.signature_text != record.signature_text:
            raise FatalCondition(
                EXIT_DUPLICATE_PROTOTYPE_MISMATCH,
                "redeclares prototype",
                record,
                prior,
                "conflicting prototype",
            )
        raise FatalCondition(
            EXIT_DUPLICATE_PROTOTYPE,
            "redeclares prototype",
            record,
            prior,
            "previous prototype",
        )

    ctx.prototypes[record.name] = record

    definition = ctx.definitions.get(record.name)
    if definition is not None:
        raise FatalCondition(
            EXIT_PROTOTYPE_AFTER_DEFINITION,
            "prototype for already-defined function",
            record,
            definition,
            "definition",
        )


def resolve_definition(ctx: RunContext, record: DeclarationRecord) -> None:
    prototype = ctx.prototypes.get(record.name)
    if prototype is not None and prototype.signature_text != record.signature_text:
        raise FatalCondition(
            EXIT_DEFINITION_PROTOTYPE_MISMATCH,
            "function definition not matching prototype",
            record,
            prototype,
            "prototype",
        )

    prior = ctx.definitions.get(record.name)
    if prior is not None:
        agreement = "identical" if prior.signature_text == record.signature_text else "differs"
        raise FatalCondition(
            EXIT_DUPLICATE_DEFINITION,
            "duplicated function",
            record,
            prior,
            f"previous definition ({agreement})",
        )

    ctx.definitions[record.name] = record


def process_line(ctx: RunContext, raw_line: str) -> None:
    line = raw_line.strip()
    if track_marker(ctx, line):
        return

    line_no = ctx.next_line
    ctx.next_line += 1

    classified = classify_line(ctx, line)
    if classified is None:
        return

    kind, text = classified
    record = DeclarationRecord(
        name=extract_key(text),
        signature_text=text,
        source_file=ctx.current_file,
        line=line_no,
    )
    if kind == PROTOTYPE:
        resolve_prototype(ctx, record)
    else:
        resolve_definition(ctx, record)


def check_stream(lines: Iterable[str], ctx: Optional[RunContext] = None) -> RunContext:
    """
    Single forward pass over a normalized stream. Raises FatalCondition at the
    first inconsistency; nothing after that line is read.
    """
    if ctx is None:
        ctx = RunContext()
    for raw_line in lines:
        process_line(ctx, raw_line)
    return ctx


# ============================================================
# ================= BUILT-IN NORMALIZER ======================
# ============================================================

class _SourceStripper:
    """
    Character level pass over one C file.

    Comments become a single space, string and character literals keep only
    their quotes, preprocessor directives and everything between file level
    braces are dropped. A `{` at file level ends the current line so a
    function header is left on a line of its own. Newlines inside an open
    parenthesis are joined so a parameter list spanning several lines ends up
    on one line. Runs of whitespace collapse to a single space on every
    emitted line, joined or not.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.lines: List[Tuple[int, str]] = []
        self._buf: List[str] = []
        self._start = 0
        self._lineno = 1
        self._depth = 0
        self._parens = 0
        self._line_blank = True

    def run(self) -> List[Tuple[int, str]]:
        text = self.text
        n = len(text)
        i = 0
        while i < n:
            ch = text[i]
            nxt = text[i + 1] if i + 1 < n else ""

            if ch == "\n":
                self._lineno += 1
                self._line_blank = True
                i += 1
                if self._depth == 0:
                    if self._parens > 0:
                        self._put(" ")
                    else:
                        self._flush()
                continue

            line_blank = self._line_blank
            if not ch.isspace():
                self._line_blank = False

            if ch == "\\" and nxt == "\n":
                self._lineno += 1
                self._put(" ")
                i += 2
                continue

            if ch == "/" and nxt == "*":
                end = text.find("*/", i + 2)
                end = n if end < 0 else end + 2
                self._lineno += text.count("\n", i, end)
                self._put(" ")
                i = end
                continue

            if ch == "/" and nxt == "/":
                end = text.find("\n", i)
                i = n if end < 0 else end
                continue

            if ch in "\"'":
                end = _literal_end(text, i)
                self._lineno += text.count("\n", i, end)
                self._put(ch + ch)
                i = end
                continue

            if ch == "#" and line_blank:
                i = self._skip_directive(i)
                continue

            if ch == "{":
                if self._depth == 0:
                    self._flush()
                self._depth += 1
                i += 1
                continue

            if ch == "}":
                if self._depth:
                    self._depth -= 1
                i += 1
                continue

            if self._depth == 0:
                if ch == "(":
                    self._parens += 1
                elif ch == ")" and self._parens:
                    self._parens -= 1
            self._put(ch)
            i += 1

        self._flush()
        return self.lines

    def _put(self, chunk: str) -> None:
        if self._depth:
            return
        if not self._start and not chunk.isspace():
            self._start = self._lineno
        self._buf.append(chunk)

    def _flush(self) -> None:
        line = "".join(self._buf).strip()
        line = re.sub(r"\s+", " ", line)
        if line:
            self.lines.append((self._start or self._lineno, line))
        self._buf = []
        self._start = 0
        self._parens = 0

    def _skip_directive(self, i: int) -> int:
        """Return the index of the newline ending the directive at `i`."""
        text = self.text
        n = len(text)
        while i < n:
            ch = text[i]
            if ch == "\\" and text.startswith("\n", i + 1):
                self._lineno += 1
                i += 2
                continue
            if ch == "/" and text.startswith("*", i + 1):
                end = text.find("*/", i + 2)
                end = n if end < 0 else end + 2
                self._lineno += text.count("\n", i, end)
                i = end
                continue
            if ch == "\n":
                return i
            i += 1
        return n


def _literal_end(text: str, start: int) -> int:
    quote = text[start]
    i = start + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == "\n":
            # unterminated literal, stop at the end of the line
            return i
        i += 1
    return n


def strip_source(text: str) -> List[Tuple[int, str]]:
    """
    Normalize C source text into (line_number, text) pairs.
    """
    return _SourceStripper(text).run()


def normalize_source(path: str, text: str) -> Iterator[str]:
    """
    Yield the normalized lines of one file, preceded by a location marker
    whenever the next line does not directly follow the previous one.
    """
    expected: Optional[int] = None
    for line_no, line in strip_source(text):
        if line_no != expected:
            yield format_marker(line_no, path)
        yield line
        expected = line_no + 1


@dataclass
class BuiltinNormalizer:
    """
    In-process stripper. The dialect only matters to the classifier through
    its storage-class keywords, which are kept verbatim here.
    """
    dialect: str = DEFAULT_DIALECT

    @contextmanager
    def open(self, paths: Sequence[str]) -> Iterator[Iterator[str]]:
        yield self._iter_lines(paths)

    def _iter_lines(self, paths: Sequence[str]) -> Iterator[str]:
        for path in paths:
            try:
                with open(path, "r", encoding="utf-8", errors="replace") as handle:
                    text = handle.read()
            except OSError as exc:
                raise ProtoCheckError(f"Could not read source file {path}: {exc}") from exc
            yield from normalize_source(path, text)


# ============================================================
# ================= EXTERNAL NORMALIZER ======================
# ============================================================

@dataclass
class ExternalNormalizer:
    """
    Runs a helper command once over all sources. `{dialect}` in any argument
    is replaced by the dialect name and the source paths are appended. The
    helper's stdout goes to a temporary file that is removed however the run
    ends.
    """
    command: List[str]
    dialect: str = DEFAULT_DIALECT

    def argv(self, paths: Sequence[str]) -> List[str]:
        return [part.replace("{dialect}", self.dialect) for part in self.command] + list(paths)

    @contextmanager
    def open(self, paths: Sequence[str]) -> Iterator[Iterator[str]]:
        argv = self.argv(paths)
        try:
            handle = tempfile.NamedTemporaryFile(
                mode="w+",
                encoding="utf-8",
                errors="replace",
                prefix="protocheck-",
                suffix=".i",
                delete=False,
            )
        except OSError as exc:
            raise ProtoCheckError(f"Could not create normalizer output file: {exc}") from exc
        try:
            with handle:
                try:
                    proc = subprocess.run(
                        argv,
                        stdout=handle,
                        stderr=subprocess.PIPE,
                        check=False,
                    )
                except OSError as exc:
                    raise ProtoCheckError(f"Could not run normalizer {argv[0]!r}: {exc}") from exc
                if proc.returncode != 0:
                    detail = (proc.stderr or b"").decode("utf-8", errors="replace").strip()
                    raise ProtoCheckError(
                        f"Normalizer {argv[0]!r} exited with status {proc.returncode}"
                        + (f": {detail}" if detail else "")
                    )
                handle.flush()
                handle.seek(0)
                yield handle
        finally:
            try:
                os.unlink(handle.name)
            except FileNotFoundError:
                pass


def make_normalizer(
    command: Optional[Sequence[str]], dialect: str
) -> Union[BuiltinNormalizer, ExternalNormalizer]:
    if command:
        return ExternalNormalizer(command=list(command), dialect=dialect)
    return BuiltinNormalizer(dialect=dialect)


# ============================================================
# ==================== CONFIGURATION =========================
# ============================================================

@dataclass
class Config:
    """
    Settings read from protocheck.yaml:

    - sources: files, directories or glob patterns, relative to the config
    - dialect: "sdcc" | "c51"
    - normalizer: helper command (string or argument list)
    - storage_keywords: replaces the dialect's storage-class keywords
    """
    sources: List[str] = field(default_factory=list)
    dialect: str = DEFAULT_DIALECT
    normalizer: Optional[List[str]] = None
    storage_keywords: Optional[List[str]] = None
    base_dir: str = "."


def _to_str_list(value: object, key: str, origin: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ProtoCheckError(f"{origin}: '{key}' must be a string or a list of strings")


def _to_command(value: object, key: str, origin: str) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        return shlex.split(value) or None
    return _to_str_list(value, key, origin) or None


def load_config(path: str) -> Config:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            doc = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        raise ProtoCheckError(f"Config file not found: {path}") from exc
    except OSError as exc:
        raise ProtoCheckError(f"Could not read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ProtoCheckError(f"Invalid YAML in {path}: {exc}") from exc

    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ProtoCheckError(f"{path}: expected a mapping at the top level")

    unknown = sorted(set(doc) - {"sources", "dialect", "normalizer", "storage_keywords"})
    if unknown:
        _log(f"Ignoring unknown config key(s) in {path}: {unknown}")

    dialect = str(doc.get("dialect", DEFAULT_DIALECT))
    if dialect not in DIALECT_STORAGE_KEYWORDS:
        raise ProtoCheckError(
            f"{path}: unknown dialect {dialect!r}, expected one of {sorted(DIALECT_STORAGE_KEYWORDS)}"
        )

    keywords = doc.get("storage_keywords")
    return Config(
        sources=_to_str_list(doc.get("sources"), "sources", path),
        dialect=dialect,
        normalizer=_to_command(doc.get("normalizer"), "normalizer", path),
        storage_keywords=None if keywords is None else _to_str_list(keywords, "storage_keywords", path),
        base_dir=os.path.dirname(path) or ".",
    )


def collect_sources(entries: Sequence[str], base_dir: str = ".") -> List[str]:
    """
    Expand files, directories and glob patterns into an ordered file list.
    Directories contribute their headers first, then their .c files, so that
    prototypes are read before the definitions they describe.
    """
    paths: List[str] = []
    seen = set()

    def _add(candidate: str) -> None:
        key = os.path.normcase(os.path.abspath(candidate))
        if key not in seen:
            seen.add(key)
            paths.append(candidate)

    for entry in entries:
        if os.path.isabs(entry) or base_dir in ("", "."):
            entry_path = entry
        else:
            entry_path = os.path.join(base_dir, entry)

        if any(ch in entry for ch in "*?["):
            for match in sorted(glob.glob(entry_path, recursive=True)):
                if os.path.isfile(match):
                    _add(match)
        elif os.path.isdir(entry_path):
            for suffix in (".h", ".c"):
                pattern = os.path.join(entry_path, "**", f"*{suffix}")
                for match in sorted(glob.glob(pattern, recursive=True)):
                    _add(match)
        elif os.path.isfile(entry_path):
            _add(entry_path)
        else:
            raise ProtoCheckError(f"Source not found: {entry_path}")

    return paths


# ============================================================
# ======================== REPORTING =========================
# ============================================================

def render_diagnostics(fatal: FatalCondition) -> List[str]:
    record, prior = fatal.record, fatal.prior
    return [
        f"{record.source_file}:{record.line}: {fatal.message}: {record.signature_text}",
        f"{prior.source_file}:{prior.line}: {fatal.prior_label}: {prior.signature_text}",
    ]


def report_fatal(fatal: FatalCondition, stream: Optional[TextIO] = None) -> None:
    stream = stream if stream is not None else sys.stderr
    for line in render_diagnostics(fatal):
        stream.write(line + "\n")


def condition_to_json_obj(fatal: FatalCondition) -> Dict[str, object]:
    def _record(rec: DeclarationRecord) -> Dict[str, object]:
        return {
            "name": rec.name,
            "signature": rec.signature_text,
            "file": rec.source_file,
            "line": rec.line,
        }

    return {
        "condition": fatal.condition,
        "code": fatal.code,
        "message": fatal.message,
        "record": _record(fatal.record),
        "prior": _record(fatal.prior),
        "tool": "protocheck",
        "version": __version__,
    }


def emit_report_json(conditions: List[FatalCondition], out: Optional[str] = None) -> None:
    text = json.dumps([condition_to_json_obj(c) for c in conditions], indent=2)
    if out:
        with open(out, "w", encoding="utf-8") as f:
            f.write(text + "\n")
    else:
        print(text)


# ============================================================
# ========================== DRIVER ==========================
# ============================================================

def run_check(
    paths: Sequence[str],
    normalizer: Optional[Union[BuiltinNormalizer, ExternalNormalizer]] = None,
    ctx: Optional[RunContext] = None,
) -> RunContext:
    """
    Normalize `paths` once and check the resulting stream.
    Raises FatalCondition or ProtoCheckError.
    """
    if normalizer is None:
        normalizer = BuiltinNormalizer()
    if ctx is None:
        ctx = RunContext()
    with normalizer.open(paths) as stream:
        check_stream(stream, ctx)
    return ctx


# ============================================================
# ============================ CLI ===========================
# ============================================================

class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="protocheck",
        description="protocheck: prototype/definition consistency gate for C sources",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    def _common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "--config",
            metavar="YAML",
            help=f"Config file (default: ./{DEFAULT_CONFIG_NAME} when present).",
        )
        sub.add_argument(
            "--dialect",
            choices=sorted(DIALECT_STORAGE_KEYWORDS),
            help="Compiler dialect; selects the storage-class keywords.",
        )
        sub.add_argument(
            "--normalizer",
            metavar="CMD",
            help=f"External normalizer command (overrides ${NORMALIZER_ENV} and the config).",
        )
        sub.add_argument(
            "sources",
            nargs="*",
            help="C sources, directories or glob patterns, in scan order.",
        )

    check_p = subparsers.add_parser(
        "check",
        help="Check prototypes and definitions; exit with the condition code.",
    )
    _common(check_p)
    check_p.add_argument(
        "--storage-keyword",
        action="append",
        metavar="KW",
        dest="storage_keywords",
        help="Storage-class keyword excluded from prototype matching (repeatable).",
    )
    check_p.add_argument(
        "--json",
        metavar="OUT_JSON",
        help="Also write the result as JSON to this file ('-' for stdout).",
    )
    check_p.add_argument("-v", "--verbose", action="store_true", help="Print a summary on success.")

    strip_p = subparsers.add_parser(
        "strip",
        help="Print the normalized stream the checker would read.",
    )
    _common(strip_p)

    return parser


def _resolve_settings(args: argparse.Namespace) -> Tuple[Config, List[str], List[str]]:
    config_path = args.config
    if config_path is None and os.path.isfile(DEFAULT_CONFIG_NAME):
        config_path = DEFAULT_CONFIG_NAME
    config = load_config(config_path) if config_path else Config()

    if args.dialect:
        config.dialect = args.dialect

    command: Optional[List[str]] = None
    if args.normalizer:
        command = shlex.split(args.normalizer)
    elif os.environ.get(NORMALIZER_ENV):
        command = shlex.split(os.environ[NORMALIZER_ENV])
    else:
        command = config.normalizer

    if args.sources:
        paths = collect_sources(args.sources)
    else:
        paths = collect_sources(config.sources, config.base_dir)
    if not paths:
        raise ProtoCheckError("No source files given.")

    return config, command or [], paths


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point.
    Intended usage:
      protocheck check src/
      protocheck check --dialect c51 inc/*.h src/*.c
      protocheck strip src/hsk_ssc/hsk_ssc.c
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        config, command, paths = _resolve_settings(args)
        normalizer = make_normalizer(command, config.dialect)

        if args.command == "strip":
            with normalizer.open(paths) as stream:
                for line in stream:
                    sys.stdout.write(line.rstrip("\n") + "\n")
            return EXIT_SUCCESS

        keywords = args.storage_keywords or config.storage_keywords
        if keywords is None:
            keywords = DIALECT_STORAGE_KEYWORDS[config.dialect]
        ctx = RunContext(storage_keywords=tuple(keywords))

        try:
            run_check(paths, normalizer, ctx)
        except FatalCondition as fatal:
            report_fatal(fatal)
            if args.json:
                emit_report_json([fatal], out=None if args.json == "-" else args.json)
            return fatal.code
    except ProtoCheckError as exc:
        _log(f"error: {exc}")
        return EXIT_TOOL_ERROR

    if args.json:
        emit_report_json([], out=None if args.json == "-" else args.json)
    if args.verbose:
        _log(
            f"{len(ctx.files_seen)} file(s), {len(ctx.prototypes)} prototype(s), "
            f"{len(ctx.definitions)} definition(s): ok"
        )
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
