import json

import google.generativeai as genai
from loguru import logger

from portfolio.errors import AssistError
from portfolio.model import COLLECTION_FIELDS, PICTURE_FIELD, RECORD_FIELDS, strip_persistence_fields


def _clean_gemini_json(text: str) -> str:
    """Strip Markdown fences from Gemini responses."""
    cleaned = (text or "").strip()
    cleaned = cleaned.replace("```json", "").replace("```", "").strip()
    return cleaned


class GeminiAssistant:
    """
    Writing help for free-text portfolio fields.

    Every call is a single generate_content request. Failures raise
    AssistError; the caller keeps the user's original text.
    """

    def __init__(self, api_key: str = None, model_name: str = "models/gemini-2.0-flash", timeout: float = 60):
        self.api_key = api_key
        self.model_name = model_name
        self.timeout = timeout
        if api_key:
            genai.configure(api_key=api_key)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _get_model(self):
        """Return a Gemini model instance."""
        return genai.GenerativeModel(self.model_name)

    def _generate(self, prompt: str) -> str:
        if not self.configured:
            raise AssistError("AI feature is not configured. Set GEMINI_API_KEY to enable it.")
        try:
            model = self._get_model()
            response = model.generate_content(prompt, request_options={"timeout": self.timeout})
            text = (response.text or "").strip()
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("Gemini request failed: {}", exc)
            raise AssistError(f"Sorry, there was an error: {exc}") from exc
        if not text:
            raise AssistError("Could not extract text from the AI response.")
        return text

    @staticmethod
    def _require_text(text: str) -> str:
        if not text or not text.strip():
            raise AssistError("Write something first, then ask the AI to improve it.")
        return text.strip()

    def improve_writing(self, text: str) -> str:
        original = self._require_text(text)
        prompt = f"""
Rewrite the following text to be more professional, clear, and impactful for a resume or portfolio.
Keep the core meaning intact but enhance the language and tone.
Do not add any introductory phrases like "Here is the rewritten text:". Just provide the improved text directly.

Original Text:
\"\"\"{original}\"\"\"
"""
        return self._generate(prompt)

    def generate_bullet_points(self, text: str) -> str:
        original = self._require_text(text)
        prompt = f"""
Convert the following description into a series of professional, accomplishment-oriented bullet points
suitable for a resume. Use Markdown for the bullet points (e.g., "* Managed a team...").
Do not add any introductory phrases. Just provide the bullet points directly.

Original Text:
\"\"\"{original}\"\"\"
"""
        return self._generate(prompt)

    def generate_first_draft(self, notes: str) -> dict:
        """
        Turn free-form notes (an old resume, a LinkedIn summary...) into a
        portfolio payload the editor can be populated from.
        """
        original = self._require_text(notes)
        prompt = f"""
You are an AI assistant that extracts structured portfolio data.

Notes about the candidate:
\"\"\"{original}\"\"\"

Return a JSON object with this structure:
{{
  "portfolioTitle": "...",
  "firstName": "...",
  "lastName": "...",
  "email": "...",
  "summary": "Markdown paragraph",
  "experience": [{{"title": "...", "company": "...", "dates": "...", "description": "Markdown bullets"}}],
  "education": [{{"degree": "...", "institution": "...", "year": "..."}}],
  "skills": [{{"name": "...", "level": "Novice | Intermediate | Advanced | Expert"}}],
  "projects": [{{"title": "...", "description": "...", "technologies": "comma, separated", "liveUrl": "", "repoUrl": ""}}]
}}

- Leave a field as an empty string when the notes do not mention it.
- Do not invent employers, degrees or URLs.
- Only output JSON, no explanations.
"""
        cleaned = _clean_gemini_json(self._generate(prompt))
        try:
            data = json.loads(cleaned)
        except ValueError as exc:
            raise AssistError("The AI response was not valid JSON.") from exc
        if not isinstance(data, dict):
            raise AssistError("The AI response was not a portfolio object.")

        draft = {
            k: v for k, v in strip_persistence_fields(data).items()
            if k in RECORD_FIELDS and k != PICTURE_FIELD
        }
        for key, fields in COLLECTION_FIELDS.items():
            items = draft.get(key) or []
            draft[key] = [
                {name: str(item.get(name) or "") for name in fields}
                for item in items if isinstance(item, dict)
            ]
        return draft
