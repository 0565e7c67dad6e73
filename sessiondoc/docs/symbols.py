"""Tree-sitter powered extraction of public symbol signatures."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Optional

from tree_sitter import Node, Parser
from tree_sitter_language_pack import get_parser

from ..models import Signature

_LANGUAGE_BY_EXTENSION = {
    ".py": "python",
    ".pyi": "python",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".rs": "rust",
}

_SCRIPT_DECLARATION_KINDS = {
    "function_declaration": "function",
    "generator_function_declaration": "function",
    "function_signature": "function",
    "class_declaration": "class",
    "abstract_class_declaration": "class",
    "interface_declaration": "interface",
    "type_alias_declaration": "type",
    "enum_declaration": "enum",
    "lexical_declaration": "const",
    "variable_declaration": "variable",
}

_RUST_ITEM_KINDS = {
    "function_item": "function",
    "struct_item": "struct",
    "enum_item": "enum",
    "trait_item": "trait",
    "type_item": "type",
    "const_item": "const",
    "static_item": "static",
}

_MAX_SIGNATURE_CHARS = 200


class SymbolParseError(ValueError):
    """Raised when a file is too broken to extract symbols from."""


@dataclass
class _ParsedSymbol:
    name: str
    kind: str
    node: Node
    body: Optional[Node]


class SymbolExtractor:
    """Extracts exported/public declaration headers without parsing bodies."""

    def __init__(self) -> None:
        self._parsers: Dict[str, Parser] = {}

    @staticmethod
    def language_for(path: str) -> Optional[str]:
        return _LANGUAGE_BY_EXTENSION.get(PurePosixPath(path).suffix.lower())

    def extract(self, path: str, content: str) -> List[Signature]:
        """Return public signatures in source order; raise SymbolParseError on broken syntax."""
        language = self.language_for(path)
        if language is None or not content.strip():
            return []
        source_bytes = content.encode("utf-8")
        tree = self._get_parser(language).parse(source_bytes)
        root = tree.root_node
        if root.has_error:
            raise SymbolParseError(f"{path}: syntax errors prevent symbol extraction")

        if language == "python":
            parsed = self._collect_python_symbols(root, source_bytes)
        elif language == "rust":
            parsed = self._collect_rust_symbols(root, source_bytes)
        else:
            jsx = PurePosixPath(path).suffix.lower() in (".tsx", ".jsx")
            parsed = self._collect_script_symbols(root, source_bytes, jsx=jsx)

        signatures: List[Signature] = []
        for symbol in parsed:
            signatures.append(
                Signature(
                    name=symbol.name,
                    kind=symbol.kind,
                    text=self._header_text(symbol, source_bytes),
                    line=symbol.node.start_point[0] + 1,
                )
            )
        return signatures

    def _get_parser(self, language: str) -> Parser:
        parser = self._parsers.get(language)
        if parser is None:
            parser = get_parser(language)
            self._parsers[language] = parser
        return parser

    @staticmethod
    def _node_text(node: Node, source_bytes: bytes) -> str:
        return source_bytes[node.start_byte : node.end_byte].decode("utf-8", errors="ignore")

    def _header_text(self, symbol: _ParsedSymbol, source_bytes: bytes) -> str:
        end = symbol.body.start_byte if symbol.body is not None else symbol.node.end_byte
        raw = source_bytes[symbol.node.start_byte : end].decode("utf-8", errors="ignore")
        text = " ".join(raw.split())
        text = text.rstrip("{:;= ").rstrip()
        if len(text) > _MAX_SIGNATURE_CHARS:
            text = text[: _MAX_SIGNATURE_CHARS - 3].rstrip() + "..."
        return text

    def _collect_python_symbols(self, root: Node, source_bytes: bytes) -> Iterable[_ParsedSymbol]:
        for child in root.children:
            node = child
            if child.type == "decorated_definition":
                definition = child.child_by_field_name("definition")
                if definition is None:
                    continue
                node = definition
            if node.type == "function_definition":
                kind = "function"
                if self._node_text(node, source_bytes).startswith("async"):
                    kind = "async function"
            elif node.type == "class_definition":
                kind = "class"
            else:
                continue
            name_node = node.child_by_field_name("name")
            name = self._node_text(name_node, source_bytes) if name_node else ""
            if not name or name.startswith("_"):
                continue
            yield _ParsedSymbol(name=name, kind=kind, node=node, body=node.child_by_field_name("body"))

    def _collect_script_symbols(
        self, root: Node, source_bytes: bytes, *, jsx: bool
    ) -> Iterable[_ParsedSymbol]:
        for child in root.children:
            if child.type != "export_statement":
                continue
            declaration = child.child_by_field_name("declaration")
            if declaration is not None:
                yield from self._script_declaration(child, declaration, source_bytes, jsx=jsx)
                continue
            value = child.child_by_field_name("value")
            if value is not None:
                yield _ParsedSymbol(name="default", kind="export", node=child, body=None)
                continue
            for clause in child.children:
                if clause.type != "export_clause":
                    continue
                for specifier in clause.children:
                    if specifier.type != "export_specifier":
                        continue
                    alias = specifier.child_by_field_name("alias")
                    name_node = alias or specifier.child_by_field_name("name")
                    if name_node is None:
                        continue
                    yield _ParsedSymbol(
                        name=self._node_text(name_node, source_bytes),
                        kind="export",
                        node=specifier,
                        body=None,
                    )

    def _script_declaration(
        self,
        export: Node,
        declaration: Node,
        source_bytes: bytes,
        *,
        jsx: bool,
    ) -> Iterable[_ParsedSymbol]:
        kind = _SCRIPT_DECLARATION_KINDS.get(declaration.type)
        if kind is None:
            return
        if declaration.type in ("lexical_declaration", "variable_declaration"):
            for declarator in declaration.children:
                if declarator.type != "variable_declarator":
                    continue
                name_node = declarator.child_by_field_name("name")
                if name_node is None:
                    continue
                name = self._node_text(name_node, source_bytes)
                value = declarator.child_by_field_name("value")
                body: Optional[Node] = value
                symbol_kind = kind
                if value is not None and value.type in ("arrow_function", "function_expression", "function"):
                    body = value.child_by_field_name("body")
                    symbol_kind = "component" if jsx and name[:1].isupper() else "function"
                yield _ParsedSymbol(name=name, kind=symbol_kind, node=export, body=body)
            return
        name_node = declaration.child_by_field_name("name")
        if name_node is None:
            return
        name = self._node_text(name_node, source_bytes)
        if kind == "function" and jsx and name[:1].isupper():
            kind = "component"
        body = None if kind == "type" else declaration.child_by_field_name("body")
        yield _ParsedSymbol(name=name, kind=kind, node=export, body=body)

    def _collect_rust_symbols(self, root: Node, source_bytes: bytes) -> Iterable[_ParsedSymbol]:
        previous: Optional[Node] = None
        for child in root.children:
            kind = _RUST_ITEM_KINDS.get(child.type)
            attribute = previous if previous is not None and previous.type == "attribute_item" else None
            previous = child
            if kind is None:
                continue
            if not any(part.type == "visibility_modifier" for part in child.children):
                continue
            name_node = child.child_by_field_name("name")
            if name_node is None:
                continue
            if attribute is not None and "command" in self._node_text(attribute, source_bytes):
                kind = "command"
            body = child.child_by_field_name("body")
            if child.type in ("const_item", "static_item"):
                body = child.child_by_field_name("value")
            yield _ParsedSymbol(
                name=self._node_text(name_node, source_bytes),
                kind=kind,
                node=child,
                body=body,
            )


__all__ = ["SymbolExtractor", "SymbolParseError"]
