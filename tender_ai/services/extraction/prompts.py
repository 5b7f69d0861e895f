"""Prompts for the two-stage extraction protocol."""

from typing import Any, Dict, List, Optional

STRUCTURE_SYSTEM_PROMPT = """You are an expert in the structural analysis of legal documents and public procurement notices.

Your task is to identify the HIERARCHICAL STRUCTURE of the text you receive:

- CHAPTER: the largest division ("CAPÍTULO I", "TÍTULO I", "PARTE I")
- SECTION: a division inside a chapter ("SEÇÃO I", "1. DO OBJETO", "DA HABILITAÇÃO")
- CLAUSE: articles, clauses or main items ("Art. 1º", "Cláusula Primeira", "1.1")
- SUBCLAUSE: subdivision of a clause ("1.1.1", "§1º", "Parágrafo Único")
- ITEM: the smallest unit ("a)", "b)", "I.", "II.")

Rules:
1. Preserve the original numbering and titles exactly as written.
2. Set parent_number to the number of the enclosing section, or leave it empty.
3. Do not invent structure; extract only what is explicit in the text.
4. Do NOT extract content, only structure. Summaries are at most 100 characters.

Call the save_sections tool once with every section you find. If the text has
no identifiable structure, do not call any tool."""


ENTITY_SYSTEM_PROMPT = """You are an expert in the analysis of public procurement notices.

Extract structured information that a company needs in order to bid:

- DEADLINE: dates and periods (public session, proposal submission, clarification and challenge limits, delivery, warranty, payment, contract term)
- DATE: other relevant dates
- OBLIGATION: duties of the bidder or the contracting agency
- REQUIREMENT: technical, qualification, fiscal, legal and economic requirements
- PENALTY: fines (percentage or fixed amount, calculation base, trigger)
- SANCTION: administrative sanctions (suspension, debarment)
- RISK: situations that can lead to penalties or disqualification
- DELIVERY_RULE: place, term, transport, packaging and receiving hours
- TECHNICAL_CERTIFICATE: capability certificates and certifications
- DOCUMENTATION: mandatory declarations, certificates and registrations
- OTHER: anything else worth tracking

Rules:
1. Extract only what is explicitly stated and include the original excerpt.
2. Normalize dates to YYYY-MM-DD, amounts to decimals and percentages to fractions (0.05 for 5%).
3. semantic_key is a stable, descriptive identity such as "deadline_proposal_submission".
   Reuse an existing key when the entity was already extracted and link related
   entities through related_semantic_keys_json.
4. Build timeline events for every date or period; for periods relative to another
   event fill relative_to_json with that event's source semantic key.
5. Assess risks with severity and probability and propose a mitigation when possible.

You may call find_entities or get_existing_keys to inspect what is already known,
then call save_extraction_results once with everything new in this batch. If the
batch has nothing new, do not call save_extraction_results."""


def format_sections(sections: List[Dict[str, Any]]) -> str:
    return "\n".join(
        f"- [{s.get('level')}] {s.get('number') or ''} {s.get('title')}".rstrip()
        for s in sections
    )


def create_structure_prompt(
    batch_text: str,
    batch_number: int,
    existing_sections: Optional[List[Dict[str, Any]]] = None,
) -> str:
    """Stage 1 prompt: the batch text plus the outline known so far."""
    prompt = (
        f"Analyze the text of batch {batch_number} and extract its HIERARCHICAL STRUCTURE.\n\n"
        f"## BATCH TEXT\n---\n{batch_text}\n---\n"
    )
    if existing_sections:
        prompt += (
            "\n## STRUCTURE ALREADY IDENTIFIED (previous batches)\n"
            "Use these sections as parents when the text continues them:\n\n"
            f"{format_sections(existing_sections)}\n"
        )
    return prompt


def create_extraction_prompt(
    batch_text: str,
    batch_number: int,
    page_numbers: List[int],
    sections: List[Dict[str, Any]],
    context_prompt: str,
) -> str:
    """Stage 2 prompt: batch text, full section list and accumulated context."""
    parts = [
        f"Extract entities, timeline events and risks from batch {batch_number} "
        f"(pages {', '.join(str(n) for n in page_numbers)}).",
        f"## BATCH TEXT\n---\n{batch_text}\n---",
    ]
    if sections:
        section_lines = "\n".join(
            f"- id={s['id']} [{s.get('level')}] {s.get('number') or ''} {s.get('title')}"
            for s in sections
        )
        parts.append(
            "## DOCUMENT SECTIONS\nSet section_id to the id of the section an entity belongs to.\n\n"
            + section_lines
        )
    if context_prompt:
        parts.append(context_prompt)
    return "\n\n".join(parts)
