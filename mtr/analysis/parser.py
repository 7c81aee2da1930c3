"""Capability interface discovery in Rust HAL packages.

Extracts public trait declarations, the impl blocks that realize traits and
the use/re-export trees needed to resolve trait paths. Output order depends
only on the source tree: files are processed sorted by path and records are
ordered by (file path, position within file).
"""

import logging
import re
import tomllib
from dataclasses import dataclass, field
from posixpath import dirname
from typing import Dict, List, Optional, Sequence, Set, Tuple

from mtr.analysis.rust_lexer import LexError, LineIndex, blank_comments_and_literals
from mtr.exceptions import ParseError
from mtr.fetch.fetcher import SourceFile
from mtr.models.glue import Diagnostic, InterfaceOrigin, InterfaceRecord, SourceLocation

logger = logging.getLogger(__name__)


TOKEN_RE = re.compile(r"[{};]|\b(?:trait|impl|mod|use)\b")
IDENT_RE = re.compile(r"\s*(?:r#)?([A-Za-z_]\w*)")
VISIBILITY_RE = re.compile(r"\bpub(\s*\([^)]*\))?\s+(?:(?:unsafe|auto)\s+)*$")
CFG_TEST_RE = re.compile(r"#\[\s*cfg\s*\(\s*test\s*\)\s*\]\s*(?:pub(?:\s*\([^)]*\))?\s+)?$")

MAX_ALIAS_HOPS = 8


@dataclass
class _Item:
    """Raw item found while scanning one file"""
    kind: str  # trait, impl, use, reexport
    order: int
    module: List[str]
    location: SourceLocation
    name: str = ""
    path: str = ""
    self_type: str = ""


@dataclass
class _FileScan:
    path: str
    crate: str
    module: List[str]
    items: List[_Item] = field(default_factory=list)


@dataclass
class _Interface:
    name: str
    module_path: str
    location: SourceLocation
    sort_key: Tuple[str, int]
    origin: InterfaceOrigin
    implementors: Set[str] = field(default_factory=set)
    reexports: Set[str] = field(default_factory=set)


@dataclass
class ParseResult:
    """Interfaces of one package plus per-file outcome"""
    records: List[InterfaceRecord] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    parsed_files: List[str] = field(default_factory=list)
    skipped_files: List[str] = field(default_factory=list)
    crates: Dict[str, str] = field(default_factory=dict)


def crate_ident(name: str) -> str:
    return name.replace("-", "_")


def discover_crates(files: Sequence[SourceFile], fallback_name: str) -> Dict[str, str]:
    """Map crate directory ("" for the root) to crate identifier

    Manifests without a [package] table (pure workspaces) are skipped. When
    the tree has no usable manifest, the root is a crate named after the
    repository.
    """
    crates: Dict[str, str] = {}
    for source in files:
        if source.path.rsplit("/", 1)[-1] != "Cargo.toml":
            continue
        directory = dirname(source.path)
        try:
            manifest = tomllib.loads(source.data.decode("utf-8"))
        except (UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
            logger.debug("Unreadable manifest %s: %s", source.path, e)
            manifest = {}
        package = manifest.get("package")
        if isinstance(package, dict) and isinstance(package.get("name"), str):
            crates[directory] = crate_ident(package["name"])
        elif "workspace" not in manifest:
            crates[directory] = crate_ident(directory.rsplit("/", 1)[-1] or fallback_name or "crate")

    if not crates:
        crates[""] = crate_ident(fallback_name or "crate")
    return crates


def module_for_file(path: str, crates: Dict[str, str]) -> Optional[Tuple[str, List[str]]]:
    """Resolve (crate, module segments) for a source path, None if not library code"""
    best: Optional[str] = None
    for directory in crates:
        prefix = f"{directory}/src/" if directory else "src/"
        if path.startswith(prefix) and (best is None or len(directory) > len(best)):
            best = directory
    if best is None:
        return None

    prefix = f"{best}/src/" if best else "src/"
    parts = path[len(prefix):].split("/")
    if parts[0] == "bin" or not parts[-1].endswith(".rs"):
        return None

    stem = parts[-1][:-3]
    if len(parts) == 1 and stem in ("lib", "main"):
        segments: List[str] = []
    elif stem == "mod":
        segments = parts[:-1]
    else:
        segments = parts[:-1] + [stem]
    return crates[best], segments


def expand_use_tree(tree: str) -> List[Tuple[str, str]]:
    """Flatten a use tree into (path, alias) pairs

    'a::{b, c::d as e, self}' -> [('a::b', 'b'), ('a::c::d', 'e'), ('a', 'a')]
    Globs are returned with alias '*'.
    """
    tree = re.sub(r"\s+", " ", tree).strip()
    if tree.startswith("::"):
        tree = tree[2:]
    return _expand(tree, "")


def _split_top_level(text: str) -> List[str]:
    parts, depth, current = [], 0, []
    for char in text:
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return [part.strip() for part in parts if part.strip()]


def _expand(tree: str, prefix: str) -> List[Tuple[str, str]]:
    brace = tree.find("{")
    if brace != -1:
        if not tree.endswith("}"):
            raise ValueError(f"malformed use tree '{tree}'")
        head = tree[:brace].strip().rstrip(":").strip()
        base = _join(prefix, head)
        results = []
        for part in _split_top_level(tree[brace + 1:-1]):
            results.extend(_expand(part, base))
        return results

    alias_match = re.match(r"^(.*?)\s+as\s+([A-Za-z_]\w*)$", tree)
    path, alias = (alias_match.group(1), alias_match.group(2)) if alias_match else (tree, None)
    path = path.replace(" ", "")

    if path == "self":
        return [(prefix, alias or prefix.rsplit("::", 1)[-1])]
    full = _join(prefix, path)
    if path.endswith("*"):
        return [(full[:-3] if full.endswith("::*") else full, "*")]
    return [(full, alias or full.rsplit("::", 1)[-1])]


def _join(prefix: str, path: str) -> str:
    if not prefix:
        return path
    if not path:
        return prefix
    return f"{prefix}::{path}"


def _strip_generics(text: str) -> str:
    """Remove <...> groups; '->' never closes a group"""
    out, depth, i = [], 0, 0
    while i < len(text):
        char = text[i]
        if char == "-" and text.startswith("->", i):
            if depth == 0:
                out.append("->")
            i += 2
            continue
        if char == "<":
            depth += 1
        elif char == ">" and depth:
            depth -= 1
        elif depth == 0:
            out.append(char)
        i += 1
    return "".join(out)


def split_impl_header(header: str) -> Optional[Tuple[str, str]]:
    """Split 'impl<G> Trait<X> for Type<Y> where ...' into (trait path, self type)

    Returns None for inherent impls.
    """
    text = header.strip()
    if text.startswith("<"):
        depth = 0
        for index, char in enumerate(text):
            if char == "<":
                depth += 1
            elif char == ">" and not text.startswith("->", index - 1):
                depth -= 1
                if depth == 0:
                    text = text[index + 1:]
                    break

    flat = _strip_generics(text)
    flat = re.split(r"\bwhere\b", flat, maxsplit=1)[0]
    flat = re.sub(r"\bfor\s*(?=\()", "", flat)
    match = re.match(r"^\s*(?:unsafe\s+)?!?\s*(?:dyn\s+)?(.+?)\s+for\s+(.+?)\s*$", flat, re.S)
    if not match:
        return None
    trait_path = re.sub(r"\s+", "", match.group(1)).lstrip(":")
    self_type = re.sub(r"\s+", " ", match.group(2)).strip()
    if not re.fullmatch(r"(?:[A-Za-z_]\w*::)*[A-Za-z_]\w*", trait_path):
        return None
    return trait_path, self_type


class InterfaceParser:
    """Discover capability interfaces across a fetched source tree"""

    def parse(self, files: Sequence[SourceFile], repository_name: str = "") -> ParseResult:
        """Parse all library sources of a package

        Args:
            files: Fetched files in any order
            repository_name: Fallback crate name for trees without manifests

        Returns:
            ParseResult with records ordered by (file path, declaration order)
        """
        ordered = sorted(files, key=lambda f: f.path)
        crates = discover_crates(ordered, repository_name)
        result = ParseResult(crates=crates)

        scans: List[_FileScan] = []
        for source in ordered:
            if not source.path.endswith(".rs"):
                continue
            located = module_for_file(source.path, crates)
            if located is None:
                continue
            crate, module = located
            try:
                scans.append(self.scan_file(source, crate, module))
            except ParseError as e:
                logger.warning("Skipping %s: %s", source.path, e.reason)
                result.skipped_files.append(source.path)
                result.diagnostics.append(Diagnostic.warning(
                    f"file skipped: parse error ({source.path}: {e.reason})"
                ))
                continue
            result.parsed_files.append(source.path)

        result.records = self._assemble(scans)
        logger.info(
            "Parsed %d file(s), skipped %d, found %d interface(s)",
            len(result.parsed_files), len(result.skipped_files), len(result.records)
        )
        return result

    def scan_file(self, source: SourceFile, crate: str, module: List[str]) -> _FileScan:
        """Scan one file for top-level traits, impls and use trees

        Raises:
            ParseError: On undecodable text, unterminated literals or unbalanced braces
        """
        try:
            text = source.data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(source.path, f"not valid UTF-8 ({e.reason})") from e

        try:
            code = blank_comments_and_literals(text)
        except LexError as e:
            raise ParseError(source.path, e.reason, e.line) from e

        index = LineIndex(code)
        scan = _FileScan(path=source.path, crate=crate, module=module)
        # Each entry is ("mod", name), ("test", "") or ("block", "")
        stack: List[Tuple[str, str]] = []
        pending: Optional[Tuple[str, str]] = None
        order = 0

        def location(offset: int) -> SourceLocation:
            line, column = index.position(offset)
            return SourceLocation(path=source.path, line=line, column=column)

        def top_level() -> bool:
            return all(kind == "mod" for kind, _ in stack)

        def current_module() -> List[str]:
            return module + [name for kind, name in stack if kind == "mod"]

        def statement_prefix(offset: int) -> str:
            start = max(code.rfind(";", 0, offset), code.rfind("{", 0, offset), code.rfind("}", 0, offset))
            return code[start + 1:offset]

        for token in TOKEN_RE.finditer(code):
            word = token.group(0)
            start = token.start()

            if word == "{":
                stack.append(pending or ("block", ""))
                pending = None
            elif word == "}":
                if not stack:
                    raise ParseError(source.path, "unbalanced closing brace", index.position(start)[0])
                stack.pop()
            elif word == ";":
                pending = None
            elif not top_level():
                continue
            elif word == "mod":
                ident = IDENT_RE.match(code, token.end())
                if ident and code[ident.end():].lstrip().startswith("{"):
                    is_test = bool(CFG_TEST_RE.search(statement_prefix(start)))
                    pending = ("test", "") if is_test else ("mod", ident.group(1))
            elif word == "trait":
                ident = IDENT_RE.match(code, token.end())
                visibility = VISIBILITY_RE.search(statement_prefix(start))
                if ident and visibility and not visibility.group(1):
                    order += 1
                    scan.items.append(_Item(
                        kind="trait", order=order, module=current_module(),
                        location=location(ident.start(1)), name=ident.group(1)
                    ))
            elif word == "impl":
                end = self._header_end(code, token.end())
                split = split_impl_header(code[token.end():end])
                if split:
                    order += 1
                    scan.items.append(_Item(
                        kind="impl", order=order, module=current_module(),
                        location=location(start), path=split[0], self_type=split[1]
                    ))
            elif word == "use":
                end = code.find(";", token.end())
                if end == -1:
                    raise ParseError(source.path, "unterminated use declaration", index.position(start)[0])
                visibility = VISIBILITY_RE.search(statement_prefix(start))
                kind = "reexport" if visibility and not visibility.group(1) else "use"
                try:
                    pairs = expand_use_tree(code[token.end():end])
                except ValueError as e:
                    raise ParseError(source.path, str(e), index.position(start)[0]) from e
                for path, alias in pairs:
                    order += 1
                    scan.items.append(_Item(
                        kind=kind, order=order, module=current_module(),
                        location=location(start), name=alias, path=path
                    ))

        if stack:
            raise ParseError(source.path, "unclosed brace at end of file")
        return scan

    @staticmethod
    def _header_end(code: str, offset: int) -> int:
        brace = code.find("{", offset)
        semi = code.find(";", offset)
        candidates = [pos for pos in (brace, semi) if pos != -1]
        return min(candidates) if candidates else len(code)

    def _assemble(self, scans: List[_FileScan]) -> List[InterfaceRecord]:
        modules: Set[str] = set()
        for scan in scans:
            for depth in range(len(scan.module) + 1):
                modules.add("::".join([scan.crate] + scan.module[:depth]))
            for item in scan.items:
                modules.add("::".join([scan.crate] + item.module))

        interfaces: Dict[str, _Interface] = {}
        declared_names: Dict[str, Set[str]] = {}
        for scan in scans:
            for item in scan.items:
                if item.kind != "trait":
                    continue
                module_path = "::".join([scan.crate] + item.module)
                identity = f"{module_path}::{item.name}"
                if identity in interfaces:
                    logger.debug("Duplicate declaration of %s at %s", identity, item.location)
                    continue
                interfaces[identity] = _Interface(
                    name=item.name, module_path=module_path, location=item.location,
                    sort_key=(scan.path, item.order), origin=InterfaceOrigin.DECLARED
                )
                declared_names.setdefault(module_path, set()).add(item.name)

        imports: Dict[str, Dict[str, str]] = {}
        globs: Dict[str, List[str]] = {}
        aliases: Dict[str, str] = {}
        for scan in scans:
            for item in scan.items:
                if item.kind not in ("use", "reexport"):
                    continue
                module_path = "::".join([scan.crate] + item.module)
                target = self._absolute(item.path, scan.crate, item.module, modules)
                if item.name == "*":
                    globs.setdefault(module_path, []).append(target)
                    continue
                imports.setdefault(module_path, {})[item.name] = target
                if item.kind == "reexport":
                    aliases[f"{module_path}::{item.name}"] = target

        def canonical(path: str) -> str:
            for _ in range(MAX_ALIAS_HOPS):
                if path in interfaces or path not in aliases or aliases[path] == path:
                    break
                path = aliases[path]
            return path

        for alias, target in aliases.items():
            resolved = canonical(target)
            if resolved in interfaces and alias != resolved:
                interfaces[resolved].reexports.add(alias)

        for scan in scans:
            for item in scan.items:
                if item.kind != "impl":
                    continue
                module_path = "::".join([scan.crate] + item.module)
                resolved = canonical(self._resolve(
                    item.path, scan.crate, item.module, module_path,
                    imports, globs, declared_names, modules
                ))
                if resolved not in interfaces:
                    module_part, _, name = resolved.rpartition("::")
                    interfaces[resolved] = _Interface(
                        name=name, module_path=module_part, location=item.location,
                        sort_key=(scan.path, item.order), origin=InterfaceOrigin.IMPLEMENTED
                    )
                interfaces[resolved].implementors.add(item.self_type)

        ordered = sorted(interfaces.values(), key=lambda i: i.sort_key)
        return [
            InterfaceRecord(
                name=interface.name,
                module_path=interface.module_path,
                declared_at=interface.location,
                origin=interface.origin,
                implementors=sorted(interface.implementors),
                reexports=sorted(interface.reexports),
            )
            for interface in ordered
        ]

    @staticmethod
    def _absolute(path: str, crate: str, module: List[str], modules: Set[str]) -> str:
        """Make a path written inside crate::module absolute"""
        segments = [s for s in path.split("::") if s]
        if not segments:
            return "::".join([crate] + module)

        head = segments[0]
        if head == "crate":
            return "::".join([crate] + segments[1:])
        if head in ("self", "super"):
            base = list(module)
            while segments and segments[0] in ("self", "super"):
                if segments.pop(0) == "super" and base:
                    base.pop()
            return "::".join([crate] + base + segments)

        local = "::".join([crate] + module + [head])
        if local in modules:
            return "::".join([crate] + module + segments)
        return "::".join(segments)

    def _resolve(
        self,
        path: str,
        crate: str,
        module: List[str],
        module_path: str,
        imports: Dict[str, Dict[str, str]],
        globs: Dict[str, List[str]],
        declared_names: Dict[str, Set[str]],
        modules: Set[str],
    ) -> str:
        """Resolve a trait path used in an impl header"""
        segments = path.split("::")
        head = segments[0]
        scope = imports.get(module_path, {})

        if head in ("crate", "self", "super"):
            return self._absolute(path, crate, module, modules)
        if head in scope:
            return "::".join([scope[head]] + segments[1:])
        if len(segments) > 1:
            return self._absolute(path, crate, module, modules)

        if head in declared_names.get(module_path, set()):
            return f"{module_path}::{head}"
        for glob in globs.get(module_path, []):
            if head in declared_names.get(glob, set()):
                return f"{glob}::{head}"
        return head
