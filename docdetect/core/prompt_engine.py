"""
Prompt preparation for Stage 3.

Every inference call goes through the same preprocessing:
1. Texts shorter than MIN_TEXT_LENGTH never reach the model
2. Only the first logical page is kept (up to the first form feed or the
   first run of three newlines, whichever comes first)
3. The page is capped to MAX_TEXT_LENGTH characters and sanitized
4. The instruction part of the prompt is capped to MAX_INSTRUCTION_WORDS

Templates are Jinja2 strings keyed by the policy's prompt_template name.
The "<name>_simple" variant is the shorter prompt used for the retry.
"""

import logging
import os
import re
from typing import Dict, Optional

from jinja2 import BaseLoader, Environment, TemplateError

from .policy import Policy
from ..utils.sanitize import sanitize_document_text

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 50
MAX_TEXT_LENGTH = 10_000
MAX_INSTRUCTION_WORDS = 500
SIMPLIFIED_TEXT_LENGTH = 2_000

PAGE_BREAKS = ("\f", "\n\n\n")

_WORD = re.compile(r"\S+")


def is_insufficient(text: Optional[str]) -> bool:
    """True when there is too little text for the model to judge."""
    return len((text or "").strip()) < MIN_TEXT_LENGTH


def first_page(text: str) -> str:
    """Text up to the earliest page break, or the whole text if there is none."""
    positions = [text.find(marker) for marker in PAGE_BREAKS]
    positions = [p for p in positions if p >= 0]
    if not positions:
        return text
    return text[:min(positions)]


def cap_words(text: str, max_words: int) -> str:
    """Cut text after max_words whitespace-separated words, keeping layout."""
    words = list(_WORD.finditer(text))
    if len(words) <= max_words:
        return text
    return text[:words[max_words - 1].end()]


class PromptEngine:
    """
    Template-based prompt builder for document-type classification.

    Features:
    - Jinja2 templates per policy, with a simplified retry variant
    - Custom templates loaded from a directory override built-ins
    - Identical text preprocessing before every call
    """

    DEFAULT_TEMPLATES = {
        "resume": """You are screening email attachments for a recruiting team.
Decide whether the document below is a {{ description }}: a document in which one person presents their own work experience, education and skills in order to apply for jobs.

It is NOT a {{ description }} if it is a job description, a vacancy announcement, a cover letter on its own, an offer letter, an invoice, a certificate, a transcript, a company brochure or any other kind of document.

You MUST respond with a single JSON object and nothing else. Format:
{"isMatch": true, "confidence": 0.85, "reason": "brief explanation", "insufficientText": false}

Rules:
1. "isMatch" is true only if the document is a {{ description }}
2. "confidence" is a number between 0.0 (uncertain) and 1.0 (certain)
3. Set "insufficientText" to true if the text is too short or too garbled to decide
4. Keep "reason" brief (under 25 words)""",

        "resume_simple": """Is the document below a {{ description }} (a CV describing one person's experience and education)?
Answer with JSON only:
{"isMatch": true or false, "confidence": 0.0 to 1.0, "reason": "short reason", "insufficientText": true or false}""",

        "job_description": """You are screening email attachments for a recruiting team.
Decide whether the document below is a {{ description }}: a document written by an employer or recruiter describing an open position, its responsibilities and the required qualifications.

It is NOT a {{ description }} if it is a résumé or CV, a cover letter, an offer letter, a contract, an invoice, a company brochure or any other kind of document.

You MUST respond with a single JSON object and nothing else. Format:
{"isMatch": true, "confidence": 0.85, "reason": "brief explanation", "insufficientText": false}

Rules:
1. "isMatch" is true only if the document is a {{ description }}
2. "confidence" is a number between 0.0 (uncertain) and 1.0 (certain)
3. Set "insufficientText" to true if the text is too short or too garbled to decide
4. Keep "reason" brief (under 25 words)""",

        "job_description_simple": """Is the document below a {{ description }} (an employer's description of an open position)?
Answer with JSON only:
{"isMatch": true or false, "confidence": 0.0 to 1.0, "reason": "short reason", "insufficientText": true or false}""",

        "document": """{{ instructions }}

Document text:
\"\"\"
{{ text }}
\"\"\"

Your JSON response:""",
    }

    def __init__(self, templates_dir: Optional[str] = None):
        """
        Initialize prompt engine.

        Args:
            templates_dir: Optional directory of *.j2 / *.jinja2 / *.txt
                templates overriding the built-ins by file stem
        """
        self.templates_dir = templates_dir
        self._env = Environment(
            loader=BaseLoader(),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._custom_templates: Dict[str, str] = {}
        if templates_dir and os.path.isdir(templates_dir):
            self._load_custom_templates(templates_dir)

    def _load_custom_templates(self, templates_dir: str) -> None:
        """Load custom templates from directory."""
        for filename in os.listdir(templates_dir):
            if filename.endswith((".jinja2", ".txt", ".j2")):
                name = os.path.splitext(filename)[0]
                path = os.path.join(templates_dir, filename)
                with open(path, "r", encoding="utf-8") as f:
                    self._custom_templates[name] = f.read()
                logger.debug(f"Loaded custom template: {name}")

    def get_template(self, name: str) -> str:
        """
        Get a template by name, custom templates first.

        Raises:
            ValueError: If no template has that name
        """
        if name in self._custom_templates:
            return self._custom_templates[name]
        if name in self.DEFAULT_TEMPLATES:
            return self.DEFAULT_TEMPLATES[name]
        raise ValueError(f"Template not found: {name}")

    def prepare_text(self, text: str) -> str:
        """First logical page, capped and sanitized."""
        page = first_page(text or "")
        return sanitize_document_text(page[:MAX_TEXT_LENGTH], MAX_TEXT_LENGTH)

    def render_instructions(self, policy: Policy, simplified: bool = False) -> str:
        """Render the policy's instruction block, capped to MAX_INSTRUCTION_WORDS."""
        name = f"{policy.prompt_template}_simple" if simplified else policy.prompt_template
        template = self._env.from_string(self.get_template(name))
        instructions = template.render(description=policy.description, policy=policy.name)
        return cap_words(instructions.strip(), MAX_INSTRUCTION_WORDS)

    def build_prompt(self, prepared_text: str, policy: Policy, simplified: bool = False) -> str:
        """
        Assemble the full prompt for one inference call.

        Args:
            prepared_text: Output of prepare_text()
            policy: Selects the instruction template
            simplified: Use the short retry variant with a shorter excerpt

        Returns:
            Rendered prompt string
        """
        text = prepared_text[:SIMPLIFIED_TEXT_LENGTH] if simplified else prepared_text
        instructions = self.render_instructions(policy, simplified=simplified)
        try:
            document = self._env.from_string(self.get_template("document"))
            return document.render(instructions=instructions, text=text)
        except TemplateError as e:
            logger.warning(f"Document template rendering failed: {e}, using plain layout")
            return f"{instructions}\n\nDocument text:\n\"\"\"\n{text}\n\"\"\"\n\nYour JSON response:"


# Global prompt engine instance
_prompt_engine: Optional[PromptEngine] = None


def get_prompt_engine(templates_dir: Optional[str] = None) -> PromptEngine:
    """Get or create the global prompt engine instance."""
    global _prompt_engine

    if _prompt_engine is None:
        _prompt_engine = PromptEngine(templates_dir=templates_dir)

    return _prompt_engine
