"""客户端目录树缓存模块

客户端持有的远程目录树镜像，按需懒加载：
- 只有展开目录节点时才发起目录列表请求
- 合并结果时只重建变更路径上的节点，未变更的兄弟节点按引用复用
- 正在加载的路径被记录，同一节点不会并发发起两次请求
- 加载失败时节点保持折叠且未加载，下次展开会重试
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, replace

from loguru import logger

from remote_fs_gateway.constants import DEFAULT_TREE_ROOT
from remote_fs_gateway.directory_manager import DirectoryManager, ListingResult
from remote_fs_gateway.listing_parser import FileEntry

Lister = Callable[[str], Awaitable[ListingResult]]
FileSelectCallback = Callable[[FileEntry], None]


@dataclass(frozen=True)
class TreeNode:
    """带展开状态的目录树节点。

    Attributes:
        entry: 节点对应的文件条目
        depth: 嵌套深度，根集合为0
        loaded: 子节点是否已加载
        expanded: 是否展开
        children: 子节点，未加载时为None
    """

    entry: FileEntry
    depth: int = 0
    loaded: bool = False
    expanded: bool = False
    children: tuple[TreeNode, ...] | None = None

    @classmethod
    def from_entry(cls, entry: FileEntry, *, depth: int = 0) -> TreeNode:
        # 文件没有子节点，视为已加载
        return cls(entry=entry, depth=depth, loaded=not entry.is_directory)

    @property
    def name(self) -> str:
        return self.entry.name

    @property
    def path(self) -> str:
        return self.entry.path

    @property
    def is_directory(self) -> bool:
        return self.entry.is_directory


def _replace_node(
    nodes: tuple[TreeNode, ...],
    path: str,
    update: Callable[[TreeNode], TreeNode],
) -> tuple[tuple[TreeNode, ...], bool]:
    for index, node in enumerate(nodes):
        if node.path == path:
            return nodes[:index] + (update(node),) + nodes[index + 1 :], True
        if node.children and path.startswith(node.path.rstrip("/") + "/"):
            children, changed = _replace_node(node.children, path, update)
            if changed:
                return nodes[:index] + (replace(node, children=children),) + nodes[index + 1 :], True
    return nodes, False


def _walk(nodes: tuple[TreeNode, ...], *, visible_only: bool) -> Iterator[TreeNode]:
    for node in nodes:
        yield node
        if node.children and (node.expanded or not visible_only):
            yield from _walk(node.children, visible_only=visible_only)


def directory_lister(directory: DirectoryManager, session_id: str) -> Lister:
    async def _list(path: str) -> ListingResult:
        return await directory.list_directory(session_id, path)

    return _list


class TreeCache:
    """懒加载的远程目录树缓存。

    Attributes:
        errors: 最近一次加载失败的路径及原因
    """

    def __init__(
        self,
        lister: Lister,
        *,
        on_file_select: FileSelectCallback | None = None,
    ) -> None:
        """初始化目录树缓存。

        Args:
            lister: 目录列表函数，接收路径返回 ListingResult
            on_file_select: 选中文件节点时的回调，用于预览或编辑
        """
        self._lister = lister
        self._on_file_select = on_file_select
        self._roots: tuple[TreeNode, ...] = ()
        self._root_path: str | None = None
        self._loading: dict[str, asyncio.Future[None]] = {}
        self.errors: dict[str, str] = {}

    @property
    def roots(self) -> tuple[TreeNode, ...]:
        return self._roots

    @property
    def root_path(self) -> str | None:
        return self._root_path

    @property
    def loading(self) -> frozenset[str]:
        return frozenset(self._loading)

    def find(self, path: str) -> TreeNode | None:
        for node in _walk(self._roots, visible_only=False):
            if node.path == path:
                return node
        return None

    def visible_nodes(self) -> list[TreeNode]:
        """按渲染顺序返回当前可见的节点。"""
        return list(_walk(self._roots, visible_only=True))

    async def load_root(self, path: str = DEFAULT_TREE_ROOT) -> tuple[TreeNode, ...]:
        """从一次目录列表构建根集合。

        Args:
            path: 根路径，默认家目录

        Returns:
            新的根节点集合
        """
        result = await self._lister(path)
        self._root_path = result.path
        self._loading.clear()
        self.errors.clear()
        if result.warning is not None:
            self.errors[result.path] = result.warning
        self._roots = tuple(TreeNode.from_entry(e, depth=0) for e in result.entries)
        return self._roots

    async def reload(self) -> tuple[TreeNode, ...]:
        """重建整棵树。"""
        return await self.load_root(self._root_path or DEFAULT_TREE_ROOT)

    async def expand(self, path: str) -> TreeNode | None:
        """展开或折叠目录节点。

        已展开则折叠（保留子节点）；已加载但折叠则直接展开；
        未加载则发起一次目录列表请求。正在加载的路径再次调用时
        只等待该次加载完成，不会重复请求。

        Args:
            path: 目录节点的规范路径

        Returns:
            更新后的节点，路径不在树中时返回None

        Raises:
            ValueError: 节点不是目录
        """
        pending = self._loading.get(path)
        if pending is not None:
            await asyncio.shield(pending)
            return self.find(path)

        node = self.find(path)
        if node is None:
            return None
        if not node.is_directory:
            raise ValueError(f"不是目录节点: {path}")

        if node.expanded:
            self._update(path, lambda n: replace(n, expanded=False))
            return self.find(path)
        if node.loaded:
            self._update(path, lambda n: replace(n, expanded=True))
            return self.find(path)

        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._loading[path] = future
        try:
            await self._load_children(node)
        finally:
            self._loading.pop(path, None)
            future.set_result(None)
        return self.find(path)

    async def select(self, path: str) -> FileEntry | None:
        """选中节点：文件交给调用方预览/编辑，目录委托给 expand。"""
        node = self.find(path)
        if node is None:
            return None
        if node.is_directory:
            await self.expand(path)
            return None
        if self._on_file_select is not None:
            self._on_file_select(node.entry)
        return node.entry

    async def _load_children(self, node: TreeNode) -> None:
        path = node.path
        try:
            result = await self._lister(path)
        except Exception as exc:
            logger.warning("加载目录失败 {}: {}", path, exc)
            self._mark_failed(path, str(exc))
            return

        if result.warning is not None:
            self._mark_failed(path, result.warning)
            return

        children = tuple(
            TreeNode.from_entry(entry, depth=node.depth + 1) for entry in result.entries
        )
        self.errors.pop(path, None)
        self._update(
            path,
            lambda n: replace(n, children=children, loaded=True, expanded=True),
        )

    def _mark_failed(self, path: str, reason: str) -> None:
        self.errors[path] = reason
        self._update(path, lambda n: replace(n, loaded=False, expanded=False))

    def _update(self, path: str, update: Callable[[TreeNode], TreeNode]) -> None:
        self._roots, _ = _replace_node(self._roots, path, update)
