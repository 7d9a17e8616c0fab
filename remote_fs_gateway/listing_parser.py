"""目录列表解析模块

把远程 `ls -la` 的文本输出转换为结构化的 FileEntry 列表。

每行按固定语法解析：
    权限串(10个符号字符) 链接数 属主 属组 大小 修改时间 名称

修改时间支持三种形式：
    YYYY-MM-DD HH:MM    （--time-style 指定的可排序格式）
    Mon DD HH:MM        （平台默认格式，近期文件）
    Mon DD YYYY         （平台默认格式，较早文件）

不符合语法的行会被跳过并作为 ParseWarning 记录，部分成功优于整体失败。
"""
from __future__ import annotations

import re
import shlex
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Literal

from loguru import logger

from remote_fs_gateway.exceptions import ParseWarning
from remote_fs_gateway.path_resolver import join
from remote_fs_gateway.types import FileEntryDict

EntryKind = Literal["file", "directory"]

_LISTING_LINE_RE = re.compile(
    r"""
    ^(?P<permissions>[-a-zA-Z]{10})[.+@]?\s+
    (?P<links>\d+)\s+
    (?P<owner>\S+)\s+
    (?P<group>\S+)\s+
    (?P<size>\d+)\s+
    (?P<modified>
        \d{4}-\d{2}-\d{2}\s+\d{2}:\d{2}
        |[^\W\d_]+\.?\s+\d{1,2}\s+\d{1,2}:\d{2}
        |[^\W\d_]+\.?\s+\d{1,2}\s+\d{4}
    )\s
    (?P<name>.+)$
    """,
    re.VERBOSE,
)

_SKIPPED_NAMES = frozenset({".", ".."})

_SYMLINK_SEPARATOR = " -> "


@dataclass(frozen=True)
class FileEntry:
    """某一时刻观察到的文件系统对象快照。

    Attributes:
        name: 名称（仅最后一段）
        kind: file 或 directory
        size: 字节数，目录为None
        permissions: 符号权限串，如 drwxr-xr-x
        modified: 远程主机输出的修改时间文本
        path: 规范绝对路径
        link_target: 符号链接指向的目标，非链接为None
    """

    name: str
    kind: EntryKind
    size: int | None
    permissions: str
    modified: str
    path: str
    link_target: str | None = None

    @property
    def is_directory(self) -> bool:
        return self.kind == "directory"

    def to_dict(self) -> FileEntryDict:
        return {
            "name": self.name,
            "kind": self.kind,
            "size": self.size,
            "permissions": self.permissions,
            "modified": self.modified,
            "path": self.path,
            "link_target": self.link_target,
        }


@dataclass(frozen=True)
class ParsedListing:
    entries: list[FileEntry]
    unparsed: list[ParseWarning] = field(default_factory=list)


def build_listing_command(path: str) -> str:
    quoted = shlex.quote(path)
    return (
        f"LC_TIME=C ls -la --time-style='+%Y-%m-%d %H:%M' -- {quoted} 2>/dev/null"
        f" || LC_TIME=C ls -la -- {quoted}"
    )


def parse_line(line: str, parent_path: str) -> FileEntry | None:
    match = _LISTING_LINE_RE.match(line)
    if match is None:
        return None

    permissions = match.group("permissions")
    name = match.group("name")
    link_target: str | None = None
    if permissions.startswith("l") and _SYMLINK_SEPARATOR in name:
        name, link_target = name.split(_SYMLINK_SEPARATOR, 1)

    is_directory = permissions.startswith("d")
    return FileEntry(
        name=name,
        kind="directory" if is_directory else "file",
        size=None if is_directory else int(match.group("size")),
        permissions=permissions,
        modified=" ".join(match.group("modified").split()),
        path=join(parent_path, name),
        link_target=link_target,
    )


def sort_entries(entries: Iterable[FileEntry]) -> list[FileEntry]:
    """目录在前，文件在后，组内按名称区分大小写排序。"""
    return sorted(entries, key=lambda e: (not e.is_directory, e.name))


def parse_listing(
    text: str,
    parent_path: str,
    *,
    deny_list: Iterable[str] = (),
) -> ParsedListing:
    denied = frozenset(deny_list)
    entries: list[FileEntry] = []
    unparsed: list[ParseWarning] = []

    for raw_line in text.splitlines():
        line = raw_line.rstrip("\r")
        if not line.strip() or line.startswith("total "):
            continue

        entry = parse_line(line, parent_path)
        if entry is None:
            logger.debug("无法解析的目录列表行: {!r}", line)
            unparsed.append(ParseWarning("无法解析的目录列表行", line=line))
            continue

        if entry.name in _SKIPPED_NAMES or entry.name in denied:
            continue
        entries.append(entry)

    return ParsedListing(entries=sort_entries(entries), unparsed=unparsed)
