from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

import httpx

from app.services.errors import EmptyResponseError, ParseError

SUMMARY_FOCUS = (
    "Key strengths and qualifications of the candidate",
    "Technical skills demonstrated",
    "Communication skills",
    "Cultural fit indicators",
    "Areas for improvement",
    "Overall recommendation",
)


class GroqClient:
    """OpenAI-compatible chat completions client used for questions and summaries."""

    def __init__(
        self,
        api_key: str | None,
        model: str = "llama-3.1-70b-versatile",
        base_url: str = "https://api.groq.com/openai",
        timeout: float = 60.0,
        resume_budget: int = 1500,
        job_description_budget: int = 1000,
        question_count: int = 5,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.resume_budget = resume_budget
        self.job_description_budget = job_description_budget
        self.question_count = question_count
        self._transport = transport
        self.log = logger or logging.getLogger(__name__)

    async def generate_questions(self, resume_text: str, job_description: str) -> List[str]:
        prompt = self._build_questions_prompt(resume_text, job_description)
        content = await self._complete(prompt, json_mode=True)
        return self._parse_questions(content)

    async def summarize_transcript(self, transcript: str) -> str:
        return await self._complete(self._build_summary_prompt(transcript))

    async def _complete(self, prompt: str, json_mode: bool = False) -> str:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(f"{self.base_url}/v1/chat/completions", headers=headers, json=payload)
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                self.log.error(
                    "groq HTTP error",
                    extra={"status": exc.response.status_code, "body": exc.response.text, "model": self.model},
                )
                raise
            body = response.json()
        self.log.info("groq response", extra={"model": self.model, "usage": body.get("usage")})
        return self._extract_text(body)

    def _extract_text(self, payload: dict[str, Any]) -> str:
        choices = payload.get("choices") or []
        message = (choices[0].get("message") or {}) if choices else {}
        content = message.get("content")
        if not content or not content.strip():
            raise EmptyResponseError("Empty response from the language model")
        return content

    def _parse_questions(self, raw: str) -> List[str]:
        try:
            data = json.loads(self._strip_code_fence(raw))
        except json.JSONDecodeError as exc:
            raise ParseError(f"Failed to parse questions from model response: {exc}") from exc
        questions = data.get("questions") if isinstance(data, dict) else data
        if not isinstance(questions, list):
            raise ParseError("Model response does not contain a question list")
        parsed = [str(item).strip() for item in questions if isinstance(item, str) and item.strip()]
        if not parsed:
            raise ParseError("Model response contained no questions")
        return parsed

    def _strip_code_fence(self, payload: str) -> str:
        text = payload.strip()
        if text.startswith("```"):
            text = text[3:]
            if text.lower().startswith("json"):
                text = text[4:]
            text = text.lstrip("\n\r")
        if text.endswith("```"):
            text = text[:-3]
        return text.strip()

    def _build_questions_prompt(self, resume_text: str, job_description: str) -> str:
        technical = max(1, self.question_count - 2)
        return (
            "I have a candidate's resume and a job description. Based on these, "
            f"generate {self.question_count} interview questions:\n"
            "1. A friendly introduction question (start with \"Hi there! Hope you're well.\")\n"
            f"2. {technical} technical or experience-based questions that match the candidate's skills "
            "with the job requirements\n"
            "3. A friendly conclusion (end with \"That's all we had for today. "
            "Congratulations on completing the interview successfully!\")\n"
            f"Respond only with a JSON object of the form {{\"questions\": [str, ...]}} holding "
            f"{self.question_count} strings. Keep each question under 30 words.\n\n"
            f"Resume:\n{resume_text[: self.resume_budget]}\n\n"
            f"Job Description:\n{job_description[: self.job_description_budget]}"
        )

    def _build_summary_prompt(self, transcript: str) -> str:
        focus = "\n".join(f"{idx}. {item}" for idx, item in enumerate(SUMMARY_FOCUS, start=1))
        return (
            "As an AI assistant, analyze this interview transcript and create a comprehensive summary.\n"
            f"Focus on:\n{focus}\n"
            "Format your response as a structured report that would be helpful for a hiring manager.\n\n"
            f"Transcript:\n{transcript}"
        )
