"""
Prompt templates for Gemini.

Plain functions returning strings; the gateway never sees raw document
fields, only the finished prompt.
"""

from __future__ import annotations

from typing import Iterable, Protocol


class _Turn(Protocol):
    question: str
    answer: str


COMPREHENSIVE_ANALYSIS = (
    "Please provide a comprehensive analysis of this legal document. "
    "Include key points, parties involved, important dates, obligations, "
    "and potential risks.\n\nDocument content:\n{text}"
)

QUESTION = (
    'Please answer the following question about this document: "{question}"'
    "\n\nDocument content:\n{text}"
)

BRIEF_SUMMARY = (
    "Please provide a brief summary (max {max_words} words) of the following "
    "legal document:\n\n{text}"
)

DETAILED_SUMMARY = (
    "Please provide a detailed analysis and summary of the following legal "
    "document. Include key parties, important clauses, dates, obligations, "
    "and potential risks:\n\n{text}"
)

COMPREHENSIVE_SUMMARY = (
    "Please provide a comprehensive summary of the following legal document. "
    "Include the main purpose, key parties involved, important terms and "
    "conditions, significant dates, and any notable clauses or provisions:"
    "\n\n{text}"
)

KEY_INFORMATION = """Please extract and organize the following key information from this legal document:

1. Document Type
2. Parties Involved (names and roles)
3. Key Dates (effective dates, deadlines, expiration dates)
4. Main Obligations and Responsibilities
5. Financial Terms (amounts, payment schedules, penalties)
6. Important Clauses and Provisions
7. Potential Risks or Concerns
8. Next Steps or Action Items

Document content:
{text}

Please format the response in a clear, structured manner."""

UPLOAD_ANALYSIS = """Please analyze the following legal document and provide:
1. A summary of the document
2. Risk level assessment (Low/Medium/High)
3. Key risk factors
4. Important terms and conditions
5. Obligations for each party
6. Rights for each party
7. Fee structure
8. Termination clauses
9. Important dates and deadlines
10. Recommendations

Document content:
{text}

Please format the response as a structured analysis."""

CHAT_INSTRUCTION = (
    "Please provide a helpful and accurate response based on the document "
    "content and conversation history."
)

_SUMMARY_TEMPLATES = {
    "brief":           BRIEF_SUMMARY,
    "detailed":        DETAILED_SUMMARY,
    "comprehensive":   COMPREHENSIVE_SUMMARY,
    "key_information": KEY_INFORMATION,
}


def analysis_prompt(text: str, question: str = "", style: str | None = None) -> str:
    """
    A question wins over a style; with neither, the default is the
    comprehensive analysis.
    """
    question = (question or "").strip()
    if question:
        return QUESTION.format(question=question, text=text)
    if style:
        return summary_prompt(text, style)
    return COMPREHENSIVE_ANALYSIS.format(text=text)


def summary_prompt(text: str, style: str = "comprehensive", max_words: int = 500) -> str:
    template = _SUMMARY_TEMPLATES.get(style, COMPREHENSIVE_SUMMARY)
    return template.format(text=text, max_words=max_words)


def upload_analysis_prompt(text: str) -> str:
    return UPLOAD_ANALYSIS.format(text=text)


def chat_prompt(text: str, history: Iterable[_Turn], message: str) -> str:
    """
    Document, then prior turns as a numbered transcript, then the current
    question:

        Document content:
        …

        Previous conversation:
        Q1: …
        A1: …

        Current question: …
    """
    parts = [f"Document content:\n{text}\n\n"]
    turns = list(history)
    if turns:
        parts.append("Previous conversation:\n")
        for n, turn in enumerate(turns, start=1):
            parts.append(f"Q{n}: {turn.question}\nA{n}: {turn.answer}\n\n")
    parts.append(f"Current question: {message}\n\n{CHAT_INSTRUCTION}")
    return "".join(parts)
