"""Academic text correction through an OpenAI chat model.

Without an API key the corrector answers with a clearly labelled
simulated correction so the feature can be exercised locally.
"""

from __future__ import annotations

import logging
from typing import Optional

from openai import OpenAI, OpenAIError

from ..errors import UpstreamServiceError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "Tu es un assistant de correction académique pour des étudiants en train de rédiger "
    "leur mémoire. Ton but est de reformuler, corriger les fautes de grammaire, "
    "d'orthographe et de syntaxe, et d'améliorer le style académique sans changer le sens "
    "fondamental du texte. Retourne UNIQUEMENT le texte corrigé, aucun commentaire autour."
)
FEEDBACK = "Le texte a été révisé pour améliorer le style académique et corriger les erreurs de syntaxe."
SIMULATED_FEEDBACK = (
    "Ceci est une correction simulée car la clé API OpenAI n'est pas configurée dans le backend."
)


class TextCorrector:
    def __init__(self, api_key: Optional[str], model: str = "gpt-4o-mini", temperature: float = 0.3):
        self.model = model
        self.temperature = temperature
        self.client = OpenAI(api_key=api_key) if api_key else None

    @property
    def simulated(self) -> bool:
        return self.client is None

    def correct(self, text: str) -> dict:
        """Return `{original, corrected, feedback}` for `text`.

        Provider failures surface as `UpstreamServiceError` (502).
        """
        if self.client is None:
            return {
                "original": text,
                "corrected": "[CORRECTION SIMULÉE (Clé API manquante)]\n\n" + text.replace("a", "à"),
                "feedback": SIMULATED_FEEDBACK,
            }
        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": f"Voici le texte à corriger:\n\n{text}"},
                ],
                temperature=self.temperature,
            )
        except OpenAIError as exc:
            logger.error("text correction failed: %s", exc)
            raise UpstreamServiceError("AI correction service unavailable")
        corrected = completion.choices[0].message.content or ""
        return {"original": text, "corrected": corrected, "feedback": FEEDBACK}
