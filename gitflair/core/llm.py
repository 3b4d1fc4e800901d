import os
from typing import Dict, List, Optional

import httpx

from gitflair.config import LLM
from gitflair.core.embedder import DEFAULT_API_URL, raise_for_provider_error
from gitflair.core.errors import GenerationError, GenerationQuotaError

NOT_FOUND_ANSWER = "I couldn't find that in the indexed codebase."

ANSWER_RULES = f"""You are a concise, helpful senior software engineer answering questions about a codebase in a chat. The UI renders full markdown.

RULES (follow these strictly):
1. NEVER include raw source code from the codebase in your response. The UI shows code snippets separately.
2. For general questions keep your answer to 1-3 short paragraphs. Be direct, no filler.
3. Reference file paths inline using backticks, like `src/lib/auth.ts`.
4. If the user says "show me" or asks for code, describe WHERE the code is (file path + line range) but still do NOT paste source code.
5. If you can't answer from the snippets, say: "{NOT_FOUND_ANSWER}"
6. Sound like a teammate: casual, knowledgeable, brief.

FORMATTING (match the format to the question):
- FOLDER STRUCTURE questions: a markdown code block with a tree-style layout and brief inline comments, then a short paragraph of suggestions.
- TECH STACK questions: a brief markdown table or bullet list mapping technology to purpose, then suggested improvements naming actual packages.
- ARCHITECTURE questions: headers and short sections if needed.
- Simple questions: plain paragraphs, no special formatting.

EXTRA CAPABILITIES:
- FOLDER STRUCTURE: Analyze file paths from the context. Show the current tree, then suggest improvements (grouping by feature, separating concerns, adding missing layers).
- TECH STACK: Identify technologies from imports and configs. Suggest modern alternatives, missing tools and best practices. Name actual packages.
- IMPROVEMENTS: When asked, give actionable suggestions, not vague advice."""


def build_history_block(history: List[Dict[str, str]]) -> str:
    if not history:
        return ""
    lines = [
        f"{'User' if h['role'] == 'user' else 'Assistant'}: {h['content']}"
        for h in history
    ]
    return (
        "\nRecent conversation history (for context, do NOT repeat previous answers):\n"
        + "\n".join(lines)
        + "\n"
    )


def build_answer_prompt(context: str, question: str, history: Optional[List[Dict[str, str]]] = None) -> str:
    return (
        f"{ANSWER_RULES}\n"
        f"{build_history_block(history or [])}\n"
        f"Context from the codebase:\n{context}\n\n"
        f"User question: {question}"
    )


class LLMWrapper:
    def __init__(
        self,
        api_key: Optional[str] = None,
        http: Optional[httpx.Client] = None,
        api_url: Optional[str] = None,
    ):
        self._api_key = api_key or os.getenv("GEMINI_API_KEY")
        if not self._api_key:
            raise RuntimeError("Missing GEMINI_API_KEY environment variable")
        self._api_url = (api_url or os.getenv("GEMINI_API_URL", DEFAULT_API_URL)).rstrip("/")
        self._http = http or httpx.Client(timeout=120.0)
        self.model = LLM["model"]
        self.max_tokens = LLM["max_tokens"]
        self.temperature = LLM["temperature"]

    def generate(self, prompt: str) -> str:
        """Generate a complete (non-streaming) answer for a prompt."""
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "maxOutputTokens": self.max_tokens,
                "temperature": self.temperature,
            },
        }

        url = f"{self._api_url}/models/{self.model}:generateContent"
        try:
            response = self._http.post(
                url,
                json=payload,
                headers={"x-goog-api-key": self._api_key, "Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            raise GenerationError(f"Generation request failed: {e}") from e

        raise_for_provider_error(response, "Generation", GenerationError, GenerationQuotaError)

        candidates = response.json().get("candidates") or []
        if not candidates:
            return NOT_FOUND_ANSWER
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts).strip()
        return text or NOT_FOUND_ANSWER
