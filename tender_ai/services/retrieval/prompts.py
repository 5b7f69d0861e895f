"""Prompts for retrieval-grounded chat."""

from typing import Optional, Sequence

from tender_ai.schemas.chat import SimilarPage

CHAT_SYSTEM_PROMPT = """You are an assistant specialized in the analysis of public procurement notices.

Your role is to help the user understand the document: deadlines, requirements,
obligations, penalties and any other relevant aspect.

## Guidelines

1. **Base your answers ONLY on the provided context**
   - Use only information present in the document pages
   - If the information is not in the context, say clearly that you did not find it

2. **Be precise and cite your sources**
   - Whenever possible, point to the page where the information appears
   - Quote the document directly when relevant

3. **Clear, professional language**
   - Answer clearly and objectively, in the language of the question
   - Highlight critical information (deadlines, amounts, penalties)

4. **Admit limitations**
   - If the context is not enough, ask for clarification
   - Never invent information that is not in the document

Always reference pages where applicable (e.g. "According to page 5...").
"""

NO_CONTEXT_RESPONSE = """I could not find relevant information in the document to answer your question.

This can happen because:
- The information is not present in the document
- The question may need to be rephrased with different terms
- The document may not cover this specific subject

Could you rephrase your question or give more detail about what you are looking for?"""

DOCUMENT_NOT_READY_MESSAGE = (
    "The document has not been fully prepared for chat yet. "
    "Prepare retrieval for it before asking questions."
)


def build_rag_prompt(
    question: str,
    pages: Sequence[SimilarPage],
    document_name: Optional[str] = None,
) -> str:
    """Grounded user prompt: the retrieved pages followed by the question."""
    context = "\n\n".join(
        f"--- Page {page.page_number} (relevance: {page.similarity * 100:.0f}%) ---\n{page.text}"
        for page in pages
    )
    document_info = f"\n## Document: {document_name}\n" if document_name else ""

    return (
        f"{document_info}\n"
        "## Document context (most relevant pages)\n\n"
        f"{context}\n\n"
        "---\n\n"
        "## User question\n\n"
        f"{question}\n\n"
        "---\n\n"
        "Answer the question above based ONLY on the provided context. "
        "If the information is not available in the context, tell the user so."
    )
