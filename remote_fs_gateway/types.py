from __future__ import annotations

from typing import Literal, TypedDict

EntryKindName = Literal["file", "directory"]
FileOperationName = Literal["copy", "move", "delete", "mkdir"]


class ConnectResultDict(TypedDict):
    session_id: str
    host: str
    port: int
    username: str
    message: str


class SessionInfoDict(TypedDict):
    session_id: str
    host: str
    port: int
    username: str
    alive: bool
    created_at: str


class FileEntryDict(TypedDict):
    name: str
    kind: EntryKindName
    size: int | None
    permissions: str
    modified: str
    path: str
    link_target: str | None


class ListingResultDict(TypedDict):
    session_id: str
    path: str
    entries: list[FileEntryDict]
    warning: str | None
    unparsed: int


class CommandResultDict(TypedDict):
    session_id: str
    command: str
    cwd: str | None
    exit_code: int
    stdout: str
    stderr: str


class FileReadResultDict(TypedDict):
    session_id: str
    path: str
    content: str


class FileWriteResultDict(TypedDict):
    ok: bool
    session_id: str
    path: str
    bytes_written: int


class FileOperationResultDict(TypedDict):
    ok: bool
    session_id: str
    operation: FileOperationName
    source: str
    destination: str | None
    message: str


class HealthResultDict(TypedDict):
    status: str
    connections: int


class TerminalOutputMessage(TypedDict):
    type: Literal["terminal-output"]
    session_id: str
    command: str
    stdout: str
    stderr: str
    exit_code: int


class TerminalErrorMessage(TypedDict):
    type: Literal["error"]
    session_id: str | None
    command: str | None
    message: str
