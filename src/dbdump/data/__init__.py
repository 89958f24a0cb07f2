"""Row serialization and INSERT batching."""

from dbdump.data.batcher import InsertBatcher
from dbdump.data.serializer import RowSerializer, render_literal, serialize

__all__ = ["InsertBatcher", "RowSerializer", "render_literal", "serialize"]
