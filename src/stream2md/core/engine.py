"""Stream engine: ingest -> safe boundary -> parse -> diff, once per chunk"""

import logging
from collections.abc import Iterable, Iterator

from stream2md.config import Settings
from stream2md.core.blocks import BlockParser
from stream2md.core.boundary import BoundaryDetector
from stream2md.core.diff import diff
from stream2md.core.errors import BoundaryRegressionError, StreamClosedError
from stream2md.core.ingest import ChunkIngestor
from stream2md.core.models import ROOT, Insert, Node, PatchOp, Remove


logger = logging.getLogger(__name__)


class StreamEngine:
    """Incremental markdown engine serving exactly one stream session.

    Every call to `append` or `finalize` rebuilds the tree from the safe prefix of the
    buffer and returns the patch ops that move the previously emitted tree to the new one.
    Not thread-safe; one producer drives one instance.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()
        self._ingestor = ChunkIngestor()
        self._detector = BoundaryDetector(self.settings)
        self._parser = BlockParser(self.settings)
        self._tree: list[Node] = []
        self._boundary = 0
        self._finalized = False
        self._steps = 0
        # (ingestor version, boundary) of the last computation
        self._cached: tuple[int, int] | None = None

    @property
    def buffer(self) -> str:
        return self._ingestor.buffer

    @property
    def boundary(self) -> int:
        return self._boundary

    @property
    def tree(self) -> list[Node]:
        return [node.model_copy(deep=True) for node in self._tree]

    @property
    def finalized(self) -> bool:
        return self._finalized

    def safe_boundary(self) -> int:
        """Safe boundary of the current buffer, recomputed only after the buffer changed."""
        version = self._ingestor.version
        if self._cached is None or self._cached[0] != version:
            self._cached = (version, self._detector.compute(self._ingestor.buffer))
        return self._cached[1]

    def append(self, chunk: str | bytes) -> list[PatchOp]:
        """Feed one chunk; returns the ops for this step (often empty)."""
        if self._finalized:
            raise StreamClosedError("append() after finalize()", {"chunk_len": len(chunk)})
        self._ingestor.append(chunk)
        return self._step(self.safe_boundary())

    def finalize(self) -> list[PatchOp]:
        """Force the boundary to the end of the buffer, closing anything still open.

        Calling it again is a no-op that returns an empty list.
        """
        if self._finalized:
            return []
        self._ingestor.flush()
        self._finalized = True
        return self._step(len(self._ingestor.buffer), final=True)

    def reset(self) -> None:
        """Discard the buffer and the tree and start a new session on the same instance."""
        self._ingestor.reset()
        self._tree = []
        self._boundary = 0
        self._finalized = False
        self._steps = 0
        self._cached = None

    def stream(self, chunks: Iterable[str | bytes]) -> Iterator[list[PatchOp]]:
        """Append every chunk, then finalize; yields the ops of each step."""
        for chunk in chunks:
            yield self.append(chunk)
        yield self.finalize()

    def _step(self, boundary: int, final: bool = False) -> list[PatchOp]:
        self._steps += 1
        if boundary < self._boundary:
            return self._regress(boundary)
        if boundary == self._boundary and not final:
            logger.debug("step %d: boundary unchanged at %d", self._steps, boundary)
            return []
        tree = self._parser.parse(self._ingestor.buffer[:boundary])
        ops = diff(self._tree, tree)
        self._tree = tree
        self._boundary = boundary
        logger.debug("step %d: boundary %d, %d op(s)%s", self._steps, boundary, len(ops), " (final)" if final else "")
        return ops

    def _regress(self, boundary: int) -> list[PatchOp]:
        details = {"previous": self._boundary, "boundary": boundary, "step": self._steps}
        logger.error("safe boundary moved backwards from %d to %d", self._boundary, boundary)
        if self.settings.strict_boundary:
            raise BoundaryRegressionError("safe boundary moved backwards", details)
        tree = self._parser.parse(self._ingestor.buffer[:boundary])
        ops: list[PatchOp] = [Remove(key=(i,)) for i in range(len(self._tree) - 1, -1, -1)]
        ops.extend(Insert(parent=ROOT, index=i, node=node.model_copy(deep=True)) for i, node in enumerate(tree))
        self._tree = tree
        self._boundary = boundary
        return ops
