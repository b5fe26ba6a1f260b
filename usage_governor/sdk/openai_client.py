"""
Metered OpenAI client wrapper.

Records every chat completion as a task in a registered session without
modifying the call or its response.
"""

import itertools
from typing import Any, Dict, List, Optional

from openai import OpenAI

from ..core.task import TaskRecord
from ..storage.registry import SessionRegistry


class MeteredOpenAI:
    """OpenAI client wrapper that meters calls into a session registry.

    A task is started before each call and completed with the reported token
    usage afterwards. Failed calls are recorded with zero tokens and the
    error text, then re-raised.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        session_id: str,
        model: str,
        task_category: str,
        classification_level: Optional[str] = None,
    ):
        """Initialize metered OpenAI client.

        Args:
            registry: Registry holding the session to record into
            session_id: Registered session identifier (required)
            model: OpenAI model name (required)
            task_category: Category label for recorded tasks (required)
            classification_level: Optional hierarchy level for recorded tasks

        Raises:
            ValueError: If model, session_id or task_category is missing/empty
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        if not session_id or not session_id.strip():
            raise ValueError("session_id is required and cannot be empty")
        if not task_category or not task_category.strip():
            raise ValueError("task_category is required and cannot be empty")

        self.registry = registry
        self.session_id = session_id
        self.model = model
        self.task_category = task_category
        self.classification_level = classification_level
        self.client = OpenAI()
        self._counter = itertools.count(1)
        self.last_record: Optional[TaskRecord] = None

    def _next_task_id(self) -> str:
        return f"{self.task_category}-{next(self._counter)}"

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        task_id: Optional[str] = None,
        metrics: Optional[Dict[str, Any]] = None,
        **kwargs: Any
    ) -> Any:
        """Create chat completion with usage metering.

        Args:
            messages: List of message dictionaries (required)
            temperature: Sampling temperature (optional)
            max_tokens: Maximum tokens to generate (optional)
            task_id: Task identifier, generated when omitted
            metrics: Hierarchy metrics recorded on successful completion
            **kwargs: Additional OpenAI parameters

        Returns:
            OpenAI chat completion response, unchanged

        Raises:
            ValueError: If messages is empty or the response has no usage
            OpenAI API errors: Propagated after the failure is recorded
            UnknownSession, DuplicateTask, InvalidState: On lifecycle misuse
        """
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        task_id = task_id or self._next_task_id()
        self.registry.track_task(
            self.session_id,
            task_id,
            self.model,
            self.task_category,
            self.classification_level,
        )

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs
            )
            usage = response.usage
            if not usage:
                raise ValueError("OpenAI response missing usage information")
        except Exception as e:
            self.last_record = self.registry.complete_task_global(
                self.session_id,
                task_id,
                input_tokens=0,
                output_tokens=0,
                succeeded=False,
                error_message=str(e),
            )
            raise

        self.last_record = self.registry.complete_task_global(
            self.session_id,
            task_id,
            input_tokens=usage.prompt_tokens,
            output_tokens=usage.completion_tokens,
            succeeded=True,
            metrics=metrics,
            metadata={"request_id": response.id},
        )

        return response
