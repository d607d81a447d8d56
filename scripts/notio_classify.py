"""Heuristics that turn a raw keymap into something worth filing.

Everything here is a pure function of its inputs.  The plugin guess walks
an ordered rule list (description, then rhs, then the callback's source
path) and stops at the first hit, so adding a rule never reorders the
existing ones.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from re import Pattern
from typing import Dict, List, Optional, Tuple

KEY_TOKEN_PATTERN = re.compile(r"<([^<>\s]+)>")
MODIFIED_KEY_PATTERN = re.compile(r"^((?:[A-Za-z]-)+)(.+)$")
FUNCTION_KEY_PATTERN = re.compile(r"^[fF](\d{1,2})$")
BUILTIN_DESC_PATTERN = re.compile(r"^:help .+-default$")
CHORD_PATTERN = re.compile(r"<[CMAS]-")
MOTION_PATTERN = re.compile(r"^(?:[hjklwbge]|gg|G|%|\{|\}|[fFtT].?)$")

MODIFIER_ALIASES = {"c": "C", "m": "M", "a": "M", "s": "S", "d": "D"}

NAMED_KEYS = {
    "cr": "CR",
    "enter": "CR",
    "return": "CR",
    "esc": "Esc",
    "bs": "BS",
    "backspace": "BS",
    "tab": "Tab",
    "space": "Space",
    "bar": "Bar",
    "del": "Del",
    "delete": "Del",
    "up": "Up",
    "down": "Down",
    "left": "Left",
    "right": "Right",
    "home": "Home",
    "end": "End",
    "pageup": "PageUp",
    "pagedown": "PageDown",
    "insert": "Insert",
    "lt": "lt",
    "bslash": "Bslash",
    "nop": "Nop",
    "leader": "leader",
    "localleader": "localleader",
    "plug": "Plug",
    "cmd": "Cmd",
    "sid": "SID",
}

PREFIX_CHARS = set("gzt[]{}\"'")

PLUGIN_SHORT: Dict[str, str] = {
    "telescope.nvim": "Telescope",
    "nvim-tree.lua": "NvimTree",
    "yazi.nvim": "Yazi",
    "nvim-dap": "DAP",
    "nvim-dap-ui": "DAP UI",
    "nvim-lspconfig": "LSP",
    "nvim-cmp": "CMP",
    "nvim-tmux-navigation": "tmux-nav",
    "undotree": "UndoTree",
    "vim-fugitive": "Fugitive",
    "iris": "Iris",
}

PLUGIN_CATEGORY: Dict[str, str] = {
    "telescope.nvim": "Search",
    "nvim-tree.lua": "Navigation",
    "yazi.nvim": "Navigation",
    "nvim-dap": "Debug",
    "nvim-dap-ui": "Debug",
    "nvim-lspconfig": "LSP",
    "nvim-cmp": "Editing",
    "nvim-tmux-navigation": "Windows/Tabs",
    "undotree": "Session",
    "vim-fugitive": "Git",
    "iris": "Session",
}

# (field, pattern, plugin).  "lsp" is the buffer-aware rule: a described
# mapping that mentions diagnostics/LSP or lives in a buffer-local table.
PLUGIN_RULES: List[Tuple[str, Optional[Pattern[str]], str]] = [
    ("desc", re.compile(r"^DAP:(?i:.*ui)"), "nvim-dap-ui"),
    ("desc", re.compile(r"^DAP:"), "nvim-dap"),
    ("desc", re.compile(r"^Explorer:"), "nvim-tree.lua"),
    ("desc", re.compile(r"^Yazi:"), "yazi.nvim"),
    ("desc", re.compile(r"^Theme:"), "iris"),
    ("desc", re.compile(r"Grep|Files|Telescope"), "telescope.nvim"),
    ("desc", re.compile(r"Fugitive"), "vim-fugitive"),
    ("desc", re.compile(r"CMP"), "nvim-cmp"),
    ("lsp", None, "nvim-lspconfig"),
    ("desc", re.compile(r"Terminal"), "nvterm"),
    ("desc", re.compile(r"Undo tree"), "undotree"),
    ("rhs", re.compile(r"NvimTree"), "nvim-tree.lua"),
    ("rhs", re.compile(r"Yazi"), "yazi.nvim"),
    ("rhs", re.compile(r"Undotree"), "undotree"),
    ("rhs", re.compile(r"Git"), "vim-fugitive"),
    ("origin", re.compile(r"telescope"), "telescope.nvim"),
    ("origin", re.compile(r"nvimtree"), "nvim-tree.lua"),
    ("origin", re.compile(r"yazi"), "yazi.nvim"),
    ("origin", re.compile(r"dap"), "nvim-dap"),
    ("origin", re.compile(r"cmp"), "nvim-cmp"),
    ("origin", re.compile(r"tmux_nav"), "nvim-tmux-navigation"),
    ("origin", re.compile(r"undotree"), "undotree"),
    ("origin", re.compile(r"fugitive"), "vim-fugitive"),
    ("origin", re.compile(r"iris"), "iris"),
    ("origin", re.compile(r"lsp"), "nvim-lspconfig"),
]

LSP_DESC_PATTERN = re.compile(r"Diagnostics|LSP ")

CATEGORY_RULES: List[Tuple[Pattern[str], str]] = [
    (re.compile(r"split|zoom"), "Windows/Tabs"),
    (re.compile(r"Grep|Files"), "Search"),
    (re.compile(r"Diagnostics"), "LSP"),
    (re.compile(r"clipboard|yank"), "Clipboard"),
    (re.compile(r"Terminal"), "Terminal"),
    (re.compile(r"Git"), "Git"),
    (re.compile(r"Undo"), "Session"),
]

HUMANIZED_COMMANDS: List[Tuple[Pattern[str], str]] = [
    (re.compile(r"<Cmd>DiagToggle<CR>"), "Diagnostics: toggle"),
    (re.compile(r"<Cmd>DiagOn<CR>"), "Diagnostics: on"),
    (re.compile(r"<Cmd>DiagOff<CR>"), "Diagnostics: off"),
    (re.compile(r"<Cmd>Yazi\s+toggle<CR>"), "Yazi: resume/toggle"),
    (re.compile(r"<Cmd>Yazi\s+cwd<CR>"), "Yazi: open CWD"),
]


@dataclass(frozen=True)
class Classification:
    plugin: Optional[str]
    category: str
    type: str
    prefix: str

    @property
    def short_name(self) -> Optional[str]:
        if self.plugin is None:
            return None
        return PLUGIN_SHORT.get(self.plugin)


def _canonical_key(inner: str) -> str:
    match = MODIFIED_KEY_PATTERN.match(inner)
    if match and len(inner) > 2:
        modifiers = [MODIFIER_ALIASES.get(part.lower(), part.upper()) for part in match.group(1).split("-") if part]
        key = _canonical_key_name(match.group(2))
        if "C" in modifiers and len(key) == 1 and key.isalpha():
            key = key.lower()
        return "<" + "-".join(modifiers) + "-" + key + ">"
    return "<" + _canonical_key_name(inner) + ">"


def _canonical_key_name(name: str) -> str:
    alias = NAMED_KEYS.get(name.lower())
    if alias:
        return alias
    fn_match = FUNCTION_KEY_PATTERN.match(name)
    if fn_match:
        return f"F{fn_match.group(1)}"
    return name


def normalize_lhs(lhs: Optional[str], leader: str = " ") -> str:
    if not lhs:
        return ""
    text = lhs
    if leader and len(leader) == 1 and text.startswith(leader):
        text = "<leader>" + text[1:]
    text = KEY_TOKEN_PATTERN.sub(lambda m: _canonical_key(m.group(1)), text)
    if text.startswith("<Space>"):
        text = "<leader>" + text[len("<Space>"):]
    return text


def prefix_of(lhs: str) -> str:
    if not lhs:
        return "none"
    if lhs.startswith("<leader>"):
        return "<leader>"
    first = lhs[0]
    if first in PREFIX_CHARS:
        return first
    if first == ":":
        return ":"
    return "none"


def is_chord(lhs: str) -> bool:
    return bool(CHORD_PATTERN.search(lhs or ""))


def guess_type(lhs: str, mode: str) -> str:
    if lhs.startswith("<leader>"):
        return "leader"
    if is_chord(lhs):
        return "chord"
    if re.match(r"^g.", lhs):
        return "prefix"
    if MOTION_PATTERN.match(lhs):
        return "motion"
    if mode == "o":
        return "operator"
    return "command"


def guess_plugin(desc: str, rhs: str, origin: str, scope_flag: int) -> Optional[str]:
    sources = {"desc": desc or "", "rhs": rhs or "", "origin": origin or ""}
    for field_name, pattern, plugin in PLUGIN_RULES:
        if field_name == "lsp":
            if sources["desc"] and (LSP_DESC_PATTERN.search(sources["desc"]) or scope_flag == 1):
                return plugin
            continue
        if pattern is not None and pattern.search(sources[field_name]):
            return plugin
    return None


def guess_category(plugin: Optional[str], desc: str, lhs: str) -> str:
    if plugin and plugin in PLUGIN_CATEGORY:
        return PLUGIN_CATEGORY[plugin]
    desc = desc or ""
    if re.match(r"^<leader>[eE]?$", lhs or "") or "Explorer" in desc:
        return "Navigation"
    for pattern, category in CATEGORY_RULES:
        if pattern.search(desc):
            return category
    return "Editing"


def classify(
    lhs: str,
    mode: str,
    desc: str = "",
    rhs: str = "",
    origin: str = "",
    scope_flag: int = 0,
) -> Classification:
    """Classify an already normalized lhs."""
    plugin = guess_plugin(desc, rhs, origin, scope_flag)
    return Classification(
        plugin=plugin,
        category=guess_category(plugin, desc, lhs),
        type=guess_type(lhs, mode),
        prefix=prefix_of(lhs),
    )


def looks_builtin(desc: Optional[str]) -> bool:
    return bool(desc and BUILTIN_DESC_PATTERN.match(desc))


def humanize_command(cmd: Optional[str]) -> Optional[str]:
    cmd = re.sub(r"\s+", " ", cmd or "")
    if ":m '" in cmd and "gv=gv" in cmd:
        if "-2<CR>gv=gv" in cmd:
            return "Move selection up one line (keep selection)"
        if "+1<CR>gv=gv" in cmd:
            return "Move selection down one line (keep selection)"
        return "Move selection (keep selection)"
    for pattern, friendly in HUMANIZED_COMMANDS:
        if pattern.search(cmd):
            return friendly
    return None
