"""Known external editors, executable discovery and launch command building"""

import glob
import os
import shlex
import shutil
import sys
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator


PATH_PLACEHOLDER = "{path}"

RIDER_DOTSETTINGS = """\
<wpf:ResourceDictionary xml:space="preserve" xmlns:x="http://schemas.microsoft.com/winfx/2006/xaml" xmlns:s="clr-namespace:System;assembly=mscorlib" xmlns:ss="urn:shemas-jetbrains-com:settings-storage-xaml" xmlns:wpf="http://schemas.microsoft.com/winfx/2006/xaml/presentation">
  <s:Boolean x:Key="/Default/Environment/AutoSave/@EntryValue">False</s:Boolean>
</wpf:ResourceDictionary>
"""


class EditorDefinition(BaseModel):
    """A markdown editor wordmd knows how to find and launch."""
    id:              str
    display_name:    str
    executables:     list[str] = Field(default_factory=list, description="Names looked up on PATH")
    candidate_paths: list[str] = Field(default_factory=list, description="Install locations; env vars and globs allowed")
    args:            list[str] = Field(default_factory=lambda: [PATH_PLACEHOLDER])
    uri_launch:      bool = Field(default=False, description="args[0] is a URI handed to the OS opener")

    @field_validator("args")
    @classmethod
    def _one_placeholder(cls, value: list[str]) -> list[str]:
        if sum(a.count(PATH_PLACEHOLDER) for a in value) != 1:
            raise ValueError(f"argument template must contain {PATH_PLACEHOLDER} exactly once")
        return value


class ResolvedEditor(BaseModel):
    definition: EditorDefinition
    executable: str

    def command(self, markdown_path: Path) -> list[str]:
        """Substitute the markdown path into the argument template."""
        args = [a.replace(PATH_PLACEHOLDER, str(markdown_path)) for a in self.definition.args]
        if self.definition.uri_launch:
            return [*_opener(), *args]
        return [self.executable, *args]


def _opener() -> list[str]:
    """Platform command that hands a URI to its registered application."""
    if sys.platform == "win32":
        return ["cmd", "/c", "start", ""]
    if sys.platform == "darwin":
        return ["open"]
    return ["xdg-open"]


KNOWN_EDITORS: list[EditorDefinition] = [
    EditorDefinition(
        id="vscode", display_name="Visual Studio Code",
        executables=["code", "code.cmd", "Code.exe"],
        candidate_paths=[
            r"%ProgramFiles%\Microsoft VS Code\Code.exe",
            r"%LOCALAPPDATA%\Programs\Microsoft VS Code\Code.exe",
            "/Applications/Visual Studio Code.app/Contents/Resources/app/bin/code",
        ],
        args=["--wait", PATH_PLACEHOLDER],
    ),
    EditorDefinition(
        id="rider", display_name="JetBrains Rider",
        executables=["rider", "rider64.exe"],
        candidate_paths=[r"%ProgramFiles%\JetBrains\JetBrains Rider*\bin\rider64.exe"],
    ),
    EditorDefinition(
        id="typora", display_name="Typora",
        executables=["typora", "Typora.exe"],
        candidate_paths=[r"%ProgramFiles%\Typora\Typora.exe"],
    ),
    EditorDefinition(
        id="markdownmonster", display_name="Markdown Monster",
        executables=["MarkdownMonster.exe"],
        candidate_paths=[r"%ProgramFiles%\Markdown Monster\MarkdownMonster.exe"],
    ),
    EditorDefinition(
        id="obsidian", display_name="Obsidian",
        executables=["obsidian", "Obsidian.exe"],
        candidate_paths=[r"%LOCALAPPDATA%\Obsidian\Obsidian.exe"],
        args=["obsidian://open?path=" + PATH_PLACEHOLDER],
        uri_launch=True,
    ),
    EditorDefinition(
        id="notepad", display_name="Notepad",
        executables=["notepad.exe"],
        candidate_paths=[r"%SystemRoot%\System32\notepad.exe"],
    ),
    EditorDefinition(id="vim", display_name="Vim", executables=["vim", "nvim"]),
    EditorDefinition(id="nano", display_name="GNU nano", executables=["nano"]),
]


def _system_editor() -> Optional[EditorDefinition]:
    """Build a definition from $VISUAL / $EDITOR, if either is set."""
    value = os.getenv("VISUAL") or os.getenv("EDITOR")
    if not value:
        return None
    parts = shlex.split(value, posix=sys.platform != "win32")
    if not parts:
        return None
    return EditorDefinition(
        id="system", display_name=f"System editor ({parts[0]})",
        executables=[parts[0]], args=[*parts[1:], PATH_PLACEHOLDER],
    )


def find_executable(definition: EditorDefinition) -> Optional[str]:
    """PATH lookup first, then candidate install paths (newest glob match wins)."""
    for name in definition.executables:
        found = shutil.which(name)
        if found:
            return found
    for candidate in definition.candidate_paths:
        expanded = os.path.expandvars(candidate)
        if "*" in expanded:
            matches = sorted(glob.glob(expanded), reverse=True)
            if matches:
                return matches[0]
        elif Path(expanded).is_file():
            return expanded
    return None


class EditorRegistry:
    """Lookup of editor definitions by id, case-insensitive."""

    def __init__(self, definitions: Optional[list[EditorDefinition]] = None):
        self.definitions = list(KNOWN_EDITORS if definitions is None else definitions)

    def get(self, editor_id: str) -> Optional[EditorDefinition]:
        key = editor_id.lower()
        if key == "system":
            return _system_editor()
        return next((d for d in self.definitions if d.id.lower() == key), None)

    def resolve(self, editor_id: str) -> Optional[ResolvedEditor]:
        """Return the definition plus its executable path, or None if not installed."""
        definition = self.get(editor_id)
        if definition is None:
            return None
        executable = find_executable(definition)
        if executable is None:
            return None
        return ResolvedEditor(definition=definition, executable=executable)

    def installed(self) -> list[ResolvedEditor]:
        ids = [d.id for d in self.definitions] + (["system"] if _system_editor() else [])
        return [r for r in (self.resolve(i) for i in ids) if r is not None]

    def ordered(self, editor_order: list[str]) -> list[ResolvedEditor]:
        """Installed editors, those named in editor_order first (in that order)."""
        rank = {name.lower(): i for i, name in enumerate(editor_order)}
        return sorted(self.installed(), key=lambda r: rank.get(r.definition.id.lower(), len(rank)))


def prepare_staging(editor: EditorDefinition, staging_dir: Path) -> None:
    """Editor-specific files dropped into the staging directory before launch."""
    if editor.id == "rider":
        # turn off Rider auto-save for the staging project
        (Path(staging_dir) / "Default.DotSettings").write_text(RIDER_DOTSETTINGS, encoding="utf-8")
