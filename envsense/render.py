"""Human-readable rendering of a :class:`Report` for ``envsense info``.

Four layouts share one walk over the report:

    nested   headings plus indented ``key = value`` lines (default)
    compact  one ``dotted.path = value`` line per trait
    tree     a rich tree
    raw      values only, no headings, never coloured
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from enum import Enum
from typing import Any

from rich.console import Console
from rich.text import Text
from rich.tree import Tree

from envsense.check import format_value
from envsense.schema import TOP_LEVEL_FIELDS, Report


class Layout(str, Enum):
    NESTED = "nested"
    COMPACT = "compact"
    TREE = "tree"
    RAW = "raw"


HEADING_STYLE = "bold cyan"
KEY_STYLE = "cyan"
TRUE_STYLE = "green"
FALSE_STYLE = "red"
# Colours cycled over trait branches when rainbow output is enabled.
RAINBOW = ("magenta", "blue", "yellow", "green", "cyan", "red")


def flatten(tree: dict[str, Any], prefix: str = "") -> Iterator[tuple[str, Any]]:
    for key, value in tree.items():
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            yield from flatten(value, path)
        else:
            yield path, value


class ReportRenderer:
    """Render selected top-level fields of a report to a rich console."""

    def __init__(self, console: Console, *, color: bool = True, rainbow: bool = True) -> None:
        self.console = console
        self.color = color
        self.rainbow = rainbow and color

    def render(
        self,
        report: Report,
        layout: Layout = Layout.NESTED,
        fields: Iterable[str] | None = None,
    ) -> None:
        selected = [name for name in TOP_LEVEL_FIELDS if fields is None or name in set(fields)]
        if layout == Layout.RAW:
            for line in raw_lines(report, selected):
                self.console.print(line, markup=False, highlight=False)
            return
        if layout == Layout.TREE:
            self.console.print(self._tree(report, selected))
            return
        for name in selected:
            self.console.print(self._heading(name))
            for line in self._section(report, name, layout):
                self.console.print(line)

    # -- pieces ---------------------------------------------------------

    def _style(self, style: str) -> str:
        return style if self.color else ""

    def _heading(self, name: str) -> Text:
        return Text(f"{name.capitalize()}:", style=self._style(HEADING_STYLE))

    def _value(self, value: Any) -> Text:
        text = format_value(value)
        if value is True:
            return Text(text, style=self._style(TRUE_STYLE))
        if value is False:
            return Text(text, style=self._style(FALSE_STYLE))
        return Text(text)

    def _pair(self, indent: int, key: str, value: Any, style: str = KEY_STYLE) -> Text:
        line = Text("  " * indent)
        line.append(key, style=self._style(style))
        line.append(" = ")
        line.append_text(self._value(value))
        return line

    def _branch_style(self, index: int) -> str:
        return RAINBOW[index % len(RAINBOW)] if self.rainbow else KEY_STYLE

    def _section(self, report: Report, name: str, layout: Layout) -> Iterator[Text]:
        if name == "contexts":
            if not report.contexts:
                yield Text("  none")
            for context in report.contexts:
                yield Text(f"  {context.value}")
        elif name == "traits":
            tree = report.trait_tree()
            if layout == Layout.COMPACT:
                for path, value in flatten(tree):
                    yield self._pair(1, path, value)
            else:
                for index, (branch, values) in enumerate(tree.items()):
                    yield from self._nested(branch, values, 1, self._branch_style(index))
        elif name == "evidence":
            if not report.evidence:
                yield Text("  none")
            for item in report.evidence:
                line = Text(f"  {item.signal.value} ")
                line.append(item.key, style=self._style(KEY_STYLE))
                if item.value is not None:
                    line.append(f"={item.value}")
                line.append(f" -> {', '.join(item.supports)} ({item.confidence:.1f})")
                yield line
        elif name == "version":
            yield Text(f"  {report.version}")

    def _nested(self, key: str, value: Any, indent: int, style: str) -> Iterator[Text]:
        if not isinstance(value, dict):
            yield self._pair(indent, key, value, style)
            return
        heading = Text("  " * indent)
        heading.append(f"{key}:", style=self._style(style))
        yield heading
        if not value:
            yield Text("  " * (indent + 1) + "none")
        for child, child_value in value.items():
            yield from self._nested(child, child_value, indent + 1, KEY_STYLE)

    def _tree(self, report: Report, selected: list[str]) -> Tree:
        root = Tree(Text("envsense", style=self._style(HEADING_STYLE)))
        for name in selected:
            node = root.add(self._heading(name))
            if name == "traits":
                self._grow(node, report.trait_tree())
                continue
            for line in self._section(report, name, Layout.NESTED):
                node.add(Text(line.plain.strip()))
        return root

    def _grow(self, node: Tree, tree: dict[str, Any]) -> None:
        for key, value in tree.items():
            if isinstance(value, dict):
                self._grow(node.add(Text(key, style=self._style(KEY_STYLE))), value)
            else:
                node.add(self._pair(0, key, value))


def raw_lines(report: Report, selected: Iterable[str]) -> list[str]:
    lines: list[str] = []
    for name in selected:
        if name == "contexts":
            lines.extend(context.value for context in report.contexts)
        elif name == "traits":
            lines.extend(f"{path}={format_value(value)}" for path, value in flatten(report.trait_tree()))
        elif name == "evidence":
            lines.extend(f"{item.key}={item.value or ''}" for item in report.evidence)
        elif name == "version":
            lines.append(report.version)
    return lines
