from __future__ import annotations

from marketlens.models.jobs import ResearchParams

RESEARCHING = "Researching..."
FINALIZING = "Finalizing..."
STARTING = "Starting..."

# Checked in order; the first bucket with a matching fragment wins.
STATUS_BUCKETS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (RESEARCHING, ("search", "finding", "looking")),
    (FINALIZING, ("writ", "compil", "generat", "upload")),
    (STARTING, ("start", "initializ", "plan")),
)


def bucket_status(message: str) -> str | None:
    """Map free-text progress narration to a coarse status label, or None."""
    lowered = message.lower()
    for label, fragments in STATUS_BUCKETS:
        if any(fragment in lowered for fragment in fragments):
            return label
    return None


def build_prompt(params: ResearchParams) -> str:
    """Build the research instruction sent to the execution service."""
    context = params.context or "General analysis"
    parent = params.parent_doc

    if parent:
        return f"""FOLLOW-UP RESEARCH REQUEST

First, access and analyze Document ID: {parent.id} from the content object library.
Parent document: {parent.title}

The user wants to explore: {params.context or 'Further analysis based on the parent document'}

Framework: {params.framework}
Scope: {params.scope}
Analytical Rigor: {params.rigor}
Context: {context}

Generate a comprehensive research document with hyperlinked sources.
The final output must be a document uploaded to the content object library.

CRITICAL METADATA - set these properties:
- parent_document_id: "{parent.id}"
- parent_document_title: "{parent.title}"
- relationship_type: "follow_up_research"

FINAL STEP: After uploading, search for collections containing parent doc ID: {parent.id}
Add the new document to ALL of those collections."""

    prompt = f"""Framework: {params.framework}
Scope: {params.scope}
Analytical Rigor: {params.rigor}
Context: {context}

Generate a comprehensive research document with hyperlinked sources.
The final output must be a document uploaded to the content object library."""

    if params.workspace_id:
        prompt += (
            f"\n\nFINAL STEP: After uploading, add the document to collection ID: "
            f'{params.workspace_id} (named "{params.workspace_name or "Unknown"}").'
        )
    else:
        prompt += "\n\nNOTE: Save to library only - do NOT add to any collection."

    return prompt
