import re
import json
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Tuple

from .prompts.loader import PromptLoader
from .providers.llm_provider_factory import LLMProviderFactory
from .providers.provider import LLMProvider, LLMProviderError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"

DEFAULT_CONFIDENCE = 75
FALLBACK_CONFIDENCE = 60
ETL_DEFAULT_CONFIDENCE = 80
ETL_FALLBACK_CONFIDENCE = 70

CONNECTION_KEYWORDS = ("connect", "connection", "how do i")

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")
_NUMBERED_STEP = re.compile(r"(\d+\.\s*)([^\n]+)")


@dataclass
class PipelineStep:
    id: str
    name: str
    description: str
    sql: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)
    estimated_time: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "sql": self.sql,
            "dependencies": self.dependencies,
            "estimated_time": self.estimated_time,
        }


@dataclass
class ProcessQueryRequest:
    """A natural-language question and the schema context gathered for it"""
    query: str
    database_ids: List[int]
    schema: List[Any] = field(default_factory=list)
    context: Optional[str] = None


@dataclass
class ProcessQueryResponse:
    explanation: str
    confidence: float
    sql: Optional[str] = None
    results: Optional[List[Any]] = None
    suggestions: List[str] = field(default_factory=list)
    pipeline_steps: Optional[List[PipelineStep]] = None
    connection_help: Optional[str] = None
    follow_up_questions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "explanation": self.explanation,
            "confidence": self.confidence,
            "sql": self.sql,
            "results": self.results,
            "suggestions": self.suggestions,
            "pipeline_steps": [s.to_dict() for s in self.pipeline_steps] if self.pipeline_steps is not None else None,
            "connection_help": self.connection_help,
            "follow_up_questions": self.follow_up_questions,
        }


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Parse the outermost `{...}` block of a model answer, None if there is none"""
    match = _JSON_BLOCK.search(text)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        logger.warning("Failed to parse JSON response, using fallback")
        return None
    return parsed if isinstance(parsed, dict) else None


def coerce_confidence(value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return default
    return max(0.0, min(100.0, confidence))


def extract_pipeline_steps(text: str) -> List[PipelineStep]:
    """Turn the numbered lines of a free-form answer into pipeline steps"""
    return [
        PipelineStep(
            id=f"step-{index}",
            name=f"Step {index}",
            description=match.group(2).strip(),
            estimated_time="5-15 minutes",
        )
        for index, match in enumerate(_NUMBERED_STEP.finditer(text), start=1)
    ]


def is_connection_query(query: str) -> bool:
    lowered = query.lower()
    return any(keyword in lowered for keyword in CONNECTION_KEYWORDS)


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


class QueryAssistant:
    """
    LLM collaborator for natural-language database questions.

    Builds the prompts from Jinja2 templates, calls the configured provider
    and parses its JSON answer. Answers that are not valid JSON degrade into a
    plain-text explanation; provider failures raise LLMProviderError.
    """

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        model: str = DEFAULT_MODEL,
        prompt_loader: Optional[PromptLoader] = None,
        max_tokens: int = 4000,
        timeout: float = 120.0
    ):
        """
        Initialize the assistant

        Args:
            provider: LLM provider to use (if None, created from `model` on first use)
            model: Model name used when a provider has to be created
            prompt_loader: Template loader (default: the bundled templates)
            max_tokens: Token budget of a query answer
            timeout: Seconds to wait for the provider before giving up
        """
        self.provider = provider
        self.model = model
        self.prompt_loader = prompt_loader or PromptLoader()
        self.max_tokens = max_tokens
        self.timeout = timeout

    def _resolve_provider(self, api_key: Optional[str]) -> Tuple[LLMProvider, bool]:
        """Return the provider to call and whether it is owned by this call"""
        try:
            if api_key:
                return LLMProviderFactory.create_provider(self.model, api_key), True
            if self.provider is None:
                self.provider = LLMProviderFactory.create_provider(self.model)
            return self.provider, False
        except ValueError as e:
            raise LLMProviderError(str(e)) from e

    async def _complete(self, prompt: str, system_prompt: Optional[str], max_tokens: int,
                        api_key: Optional[str] = None) -> str:
        provider, owned = self._resolve_provider(api_key)
        kwargs = {"max_tokens": max_tokens}
        if system_prompt:
            kwargs["system_prompt"] = system_prompt
        try:
            return await asyncio.wait_for(provider.generate(prompt, **kwargs), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise LLMProviderError(f"LLM call timed out after {self.timeout}s") from e
        finally:
            if owned:
                await provider.aclose()

    def _schema_context(self, schemas: Optional[List[Any]]) -> List[Dict[str, Any]]:
        return [s.to_dict() if hasattr(s, "to_dict") else s for s in (schemas or [])]

    def build_system_prompt(self, schemas: Optional[List[Any]] = None, context: Optional[str] = None) -> str:
        return self.prompt_loader.render_prompt(
            "query_system.j2",
            schemas=self._schema_context(schemas),
            context=context,
        )

    def build_user_prompt(self, query: str, database_ids: List[int]) -> str:
        template = "connection_query.j2" if is_connection_query(query) else "data_query.j2"
        return self.prompt_loader.render_prompt(template, query=query, database_ids=database_ids)

    def parse_response(self, response_text: str) -> ProcessQueryResponse:
        parsed = extract_json_object(response_text)
        if parsed is not None:
            return ProcessQueryResponse(
                explanation=parsed.get("explanation") or response_text,
                sql=parsed.get("sql"),
                confidence=coerce_confidence(parsed.get("confidence"), DEFAULT_CONFIDENCE),
                suggestions=_as_list(parsed.get("suggestions")),
                results=parsed.get("results"),
                connection_help=parsed.get("connectionHelp"),
                follow_up_questions=_as_list(parsed.get("followUpQuestions")),
            )

        return ProcessQueryResponse(
            explanation=response_text,
            confidence=FALLBACK_CONFIDENCE,
            suggestions=["Response format may not be optimal - please rephrase your query"],
        )

    async def process_natural_language_query(
        self,
        request: ProcessQueryRequest,
        api_key: Optional[str] = None
    ) -> ProcessQueryResponse:
        """
        Answer a natural-language question about the target databases

        Args:
            request: Question, target database ids, schema context and extra context
            api_key: Optional caller-supplied credential for the provider

        Returns:
            ProcessQueryResponse: Parsed answer

        Raises:
            LLMProviderError: If the provider cannot be reached or fails
        """
        system_prompt = self.build_system_prompt(request.schema, request.context)
        user_prompt = self.build_user_prompt(request.query, request.database_ids)

        response_text = await self._complete(user_prompt, system_prompt, self.max_tokens, api_key)
        return self.parse_response(response_text)

    def parse_etl_response(self, response_text: str) -> ProcessQueryResponse:
        parsed = extract_json_object(response_text)
        if parsed is not None:
            raw_steps = parsed.get("pipelineSteps")
            if isinstance(raw_steps, list) and raw_steps:
                steps = [
                    PipelineStep(
                        id=str(step.get("id") or f"step-{index}"),
                        name=step.get("name") or f"Step {index}",
                        description=step.get("description", ""),
                        sql=step.get("sql"),
                        dependencies=_as_list(step.get("dependencies")),
                        estimated_time=step.get("estimatedTime"),
                    )
                    for index, step in enumerate(raw_steps, start=1)
                    if isinstance(step, dict)
                ]
            else:
                steps = extract_pipeline_steps(response_text)
            return ProcessQueryResponse(
                explanation=parsed.get("explanation") or response_text,
                confidence=coerce_confidence(parsed.get("confidence"), ETL_DEFAULT_CONFIDENCE),
                suggestions=_as_list(parsed.get("suggestions")),
                pipeline_steps=steps,
            )

        return ProcessQueryResponse(
            explanation=response_text,
            confidence=ETL_FALLBACK_CONFIDENCE,
            pipeline_steps=extract_pipeline_steps(response_text),
            suggestions=["ETL pipeline generated - review steps carefully before execution"],
        )

    async def generate_etl_pipeline(
        self,
        source: str,
        target: str,
        requirements: str,
        schema: Optional[List[Any]] = None,
        api_key: Optional[str] = None
    ) -> ProcessQueryResponse:
        """Design an ETL pipeline between two systems"""
        system_prompt = self.prompt_loader.render_prompt("etl_system.j2", schemas=self._schema_context(schema))
        user_prompt = self.prompt_loader.render_prompt(
            "etl_user.j2", source=source, target=target, requirements=requirements
        )
        response_text = await self._complete(user_prompt, system_prompt, max(self.max_tokens, 6000), api_key)
        return self.parse_etl_response(response_text)

    async def validate_query(
        self,
        sql: str,
        schema: Optional[List[Any]] = None,
        api_key: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Ask the model to review a SQL statement

        A missing or unparseable verdict is reported as valid with a caution
        suggestion; provider failures still raise.
        """
        prompt = self.prompt_loader.render_prompt("validate_query.j2", sql=sql, schemas=self._schema_context(schema))
        response_text = await self._complete(prompt, None, 2000, api_key)

        parsed = extract_json_object(response_text)
        if parsed is not None and "isValid" in parsed:
            return {
                "is_valid": bool(parsed.get("isValid")),
                "errors": _as_list(parsed.get("errors")),
                "suggestions": _as_list(parsed.get("suggestions")),
            }

        logger.warning("Query validation answer could not be parsed")
        return {
            "is_valid": True,
            "errors": [],
            "suggestions": ["Unable to validate query - proceed with caution"],
        }
