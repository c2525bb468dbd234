"""Document summarization for summary-based embeddings.

Each document is summarized on its own; a failed or empty summary falls
back to the document's raw content so one bad call never drops a document.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from folder_index.clients.protocols import ChatClient
from folder_index.schemas.documents import ChunkDocument, Document, NodeDocument
from folder_index.services.chunking import estimate_tokens

__all__ = [
    'SUMMARIZATION_SYSTEM_PROMPT',
    'SummaryBatch',
    'format_summarization_prompt',
    'summarize_documents',
]

logger = logging.getLogger(__name__)

SUMMARIZATION_SYSTEM_PROMPT = """You are a code documentation assistant. Your task is to generate concise, searchable summaries of code snippets that will be used for semantic search.

Guidelines:
- The most important guideline is not to include any details that are also true of other code snippets in the file beyond mentioning its high-level purpose (see below point). Focus on what makes this snippet distinct.
- For example, if the folder implements a reranker algorithm, you do not need to say "this computes cosine similarity for a reranking algorithm", only "this computes cosine similarity".
- Focus on WHAT the code does as well as HOW it does it from a high level (for example, the names of algorithms implemented)
- Include key function/class/variable names
- Mention the purpose, example use cases and if relevant, similar tasks code may be used for
- Keep summaries to fewer than 200 words
- Use natural language that a developer might search for
- Include relevant keywords and concepts
- Do not include code syntax in the summary

Respond with ONLY the summary, no additional text or formatting."""


@dataclass(frozen=True, slots=True)
class SummaryBatch:
    """Summaries in document order plus output tokens spent producing them."""

    summaries: Sequence[str]
    tokens_output: int
    fallbacks: int


def format_summarization_prompt(document: Document) -> str:
    match document:
        case NodeDocument():
            header = [
                f'File: {document.relative_path}',
                f'Language: {document.language}',
                f'Symbol: {document.symbol_name or "(anonymous)"} ({document.node_type})',
            ]
            body = document.snippet
        case ChunkDocument():
            header = [f'File: {document.relative_path}', f'Format: {document.format}']
            body = document.original_content
    return '\n'.join([*header, '', 'Content:', '```', body, '```'])


async def summarize_documents(client: ChatClient, documents: Sequence[Document]) -> SummaryBatch:
    """Summarize documents sequentially.

    Token accounting prefers the provider's reported output tokens and falls
    back to a 4 chars/token estimate of the summary.
    """
    summaries: list[str] = []
    tokens_output = 0
    fallbacks = 0

    for document in documents:
        try:
            response = await client.invoke(SUMMARIZATION_SYSTEM_PROMPT, format_summarization_prompt(document))
        except Exception as e:
            logger.warning(f'[embed] Failed to summarize {document.document_id}, using original content: {e}')
            summaries.append(document.content)
            fallbacks += 1
            continue

        summary = response.text.strip()
        if summary:
            summaries.append(summary)
        else:
            summaries.append(document.content)
            fallbacks += 1

        if response.output_tokens is not None:
            tokens_output += response.output_tokens
        elif summary:
            tokens_output += estimate_tokens(summary)

    return SummaryBatch(summaries=summaries, tokens_output=tokens_output, fallbacks=fallbacks)
