"""Embedding row and model response schemas."""

from __future__ import annotations

from collections.abc import Mapping

from folder_index.schemas.base import JsonDatetime, StrictModel
from folder_index.schemas.documents import DocumentType

__all__ = [
    'INITIAL_STAGE',
    'PENDING_STAGE_PREFIX',
    'ChatResponse',
    'EmbeddingRow',
    'MetadataValue',
    'StoredEmbedding',
    'pending_stage',
]

# Rows served to search
INITIAL_STAGE = 'initial'

# Rows written by a running job, promoted to INITIAL_STAGE on success
PENDING_STAGE_PREFIX = 'pending:'

type MetadataValue = str | int | bool | None


def pending_stage(job_id: str) -> str:
    return f'{PENDING_STAGE_PREFIX}{job_id}'


class ChatResponse(StrictModel):
    """Chat completion text with the provider's output token count, when reported."""

    text: str
    output_tokens: int | None = None


class EmbeddingRow(StrictModel):
    """One embedded document ready to persist.

    vector holds little-endian float32 values; dim is the vector length.
    """

    folder_name: str
    file_path: str
    relative_path: str
    document_type: DocumentType
    ast_file_id: int | None
    ast_node_id: int | None
    text_chunk_id: int | None
    content: str
    vector: bytes
    dim: int
    metadata: Mapping[str, MetadataValue]


class StoredEmbedding(StrictModel):
    id: int
    stage: str
    created_at: JsonDatetime
    row: EmbeddingRow
