from typing import List

from checkmate.core.models import CombinedContent, ExtractionResult, FailedSource, SourceReference

SOURCE_SEPARATOR = "\n\n---\n\n"


def _block(position: int, result: ExtractionResult) -> str:
    return f"[Source {position}: {result.source_item.label()}]\n{result.text}"


def combine(results: List[ExtractionResult]) -> CombinedContent:
    """
    Merge successful extractions, in submission order, into one labeled payload.
    Failed extractions are carried along as ``failures`` so callers can report them.
    """
    successes = [r for r in results if r.ok]

    blocks = []
    sources = []
    for position, result in enumerate(successes, start=1):
        item = result.source_item
        blocks.append(_block(position, result))
        sources.append(SourceReference(
            kind=item.kind,
            label=item.label(),
            url=item.resolved_url,
            metadata=result.metadata,
        ))

    failures = [
        FailedSource(
            kind=r.source_item.kind,
            label=r.source_item.label(),
            url=r.source_item.resolved_url,
            error=r.error,
        )
        for r in results if not r.ok
    ]

    return CombinedContent(
        text=SOURCE_SEPARATOR.join(blocks),
        source_count=len(successes),
        sources=sources,
        failures=failures,
    )
