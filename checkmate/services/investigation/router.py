import asyncio
import json
import logging
import uuid
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from langchain_core.exceptions import OutputParserException
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.output_parsers import JsonOutputParser
from langchain_core.tools import BaseTool
from pydantic import BaseModel

from checkmate.core.config import config, Config
from checkmate.core.errors import CheckmateError, OrchestrationError, ToolExecutionError
from checkmate.core.models import (
    AgentAction,
    AgentActionEvent,
    CombinedContent,
    ErrorEvent,
    InvestigationEvent,
    InvestigationResult,
    InvestigationResultPayload,
    InvestigationType,
    ResultEvent,
    is_terminal,
)
from checkmate.services.budget import Deadline, timeout_message
from checkmate.services.investigation.parsing import parse_loose_json
from checkmate.services.investigation.tools import InvestigationTools
from checkmate.services.investigation.toolsets import TOOLSETS, Toolset
from checkmate.services.llm_wrapper import llm_wrapper

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

ACTION_LABELS = {
    "web_search": "Searching the web",
    "verify_fact": "Verifying claim",
    "evaluate_source_credibility": "Evaluating source credibility",
    "classify_source_type": "Classifying source type",
    "compare_user_source_to_external": "Comparing sources",
    "get_company_info": "Looking up company records",
    "analyze_sentiment_political": "Analyzing sentiment and political leaning",
    "generate_visualization": "Compiling visualization",
}
RESULT_PREVIEW_CHARS = 2000

FINAL_ANSWER_INSTRUCTIONS = """
When you have finished investigating, reply with ONLY a JSON object (no markdown, no prose) of this shape:
{
  "truthfulnessScore": <integer 0-100>,
  "verdict": "true" | "false" | "partially-true" | "unverifiable",
  "summary": "<brief summary>",
  "reasoning": "<detailed reasoning>",
  "evidence": [{"claim": "<claim>", "source": "<source>", "verification": "verified" | "disputed" | "unverified", "explanation": "<explanation>"}],
  "sources": [{"name": "<name>", "url": "<url>", "type": "api" | "website" | "document", "reliability": "high" | "medium" | "low"}]
}
"""

FORCE_FINAL_PROMPT = (
    "You have used all available investigation steps. Do not call any more tools. "
    "Answer now with the final JSON object based on the evidence gathered so far."
)


class ToolCall(BaseModel):
    id: str
    name: str
    args: Dict[str, Any]
    error: Optional[str] = None


def content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part) for part in content
        )
    return str(content or "")


def chat_history(messages: List[Dict[str, Any]], text_of: Callable[[Dict[str, Any]], str]) -> List[BaseMessage]:
    """Prior user/assistant turns as LangChain messages. Other roles are dropped."""
    history: List[BaseMessage] = []
    for message in messages:
        text = text_of(message)
        if not text.strip():
            continue
        if message.get("role") == "user":
            history.append(HumanMessage(content=text))
        elif message.get("role") == "assistant":
            history.append(AIMessage(content=text))
    return history


class AgentRouter:
    """
    Streaming investigation agent.

    Picks the {system prompt, tools} pair for the investigation type and drives a
    tool-calling loop with the chat model. Each tool call is reported as an
    AgentAction when issued (pending) and again when it resolves (completed or
    error). The stream ends with exactly one ResultEvent or ErrorEvent.
    """

    def __init__(
        self,
        settings: Config = config,
        tools: Optional[InvestigationTools] = None,
        llm: Optional[BaseChatModel] = None,
        toolsets: Optional[Dict[InvestigationType, Toolset]] = None,
    ):
        self.settings = settings
        self._tools = tools
        self._llm = llm
        self.toolsets = toolsets or TOOLSETS
        self.parser = JsonOutputParser(pydantic_object=InvestigationResultPayload)

    @property
    def tools(self) -> InvestigationTools:
        if self._tools is None:
            self._tools = InvestigationTools(self.settings)
        return self._tools

    def _messages(
        self,
        investigation_type: InvestigationType,
        toolset: Toolset,
        combined: CombinedContent,
        history: List[BaseMessage],
    ) -> List[BaseMessage]:
        lines = [
            "Investigate the following content and provide a comprehensive truthfulness analysis. "
            "Use your available tools to gather accurate information.",
            "",
            f"Investigation type: {investigation_type.value}",
            f"Sources analyzed: {combined.source_count}",
        ]
        if combined.failures:
            failed = "; ".join(f"{f.label} ({f.error})" for f in combined.failures)
            lines.append(f"Sources that could not be retrieved: {failed}")
        lines += ["", "Content to investigate:", combined.text]

        return [
            SystemMessage(content=toolset.system_prompt + FINAL_ANSWER_INSTRUCTIONS),
            *history,
            HumanMessage(content="\n".join(lines)),
        ]

    @staticmethod
    def _tool_calls(response: AIMessage) -> List[ToolCall]:
        calls = [
            ToolCall(id=call.get("id") or uuid.uuid4().hex, name=call["name"], args=call.get("args") or {})
            for call in response.tool_calls
        ]
        for invalid in getattr(response, "invalid_tool_calls", None) or []:
            call_id = invalid.get("id") or uuid.uuid4().hex
            name = invalid.get("name") or "unknown"
            parsed = parse_loose_json(invalid.get("args"))
            if parsed.ok and isinstance(parsed.value, dict):
                logger.info(f"Recovered malformed arguments for {name} via {parsed.strategy} parsing")
                calls.append(ToolCall(id=call_id, name=name, args=parsed.value))
            else:
                calls.append(ToolCall(
                    id=call_id,
                    name=name,
                    args={"raw": invalid.get("args")},
                    error=f"Malformed tool arguments: {invalid.get('error') or 'not valid JSON'}",
                ))
        return calls

    async def _execute(
        self,
        call: ToolCall,
        tools: Dict[str, BaseTool],
        step: int,
        emit: Callable[[AgentAction], None],
    ) -> ToolMessage:
        label = ACTION_LABELS.get(call.name, f"Running {call.name}")
        try:
            if call.error:
                raise ToolExecutionError(call.error)
            tool = tools.get(call.name)
            if tool is None:
                raise ToolExecutionError(f"Unknown tool: {call.name}")
            output = await tool.ainvoke(call.args)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = e.message if isinstance(e, CheckmateError) else str(e) or type(e).__name__
            logger.warning(f"Tool {call.name} failed: {message}")
            emit(AgentAction(
                id=call.id, action=label, tool=call.name, status="error", step=step, args=call.args, error=message
            ))
            return ToolMessage(content=f"Error: {message}", tool_call_id=call.id, name=call.name, status="error")

        text = output if isinstance(output, str) else json.dumps(output, default=str)
        emit(AgentAction(
            id=call.id,
            action=label,
            tool=call.name,
            status="completed",
            step=step,
            args=call.args,
            result=text[:RESULT_PREVIEW_CHARS],
        ))
        return ToolMessage(content=text, tool_call_id=call.id, name=call.name)

    def _final_payload(self, response: AIMessage) -> InvestigationResultPayload:
        text = content_text(response.content)
        try:
            raw = self.parser.parse(text)
        except OutputParserException:
            parsed = parse_loose_json(text)
            raw = parsed.value if parsed.ok else None

        if not isinstance(raw, dict):
            logger.error(f"Unparseable final answer: {text[:200]!r}")
            raise OrchestrationError("The model's final answer could not be parsed into an investigation result.")
        try:
            payload = InvestigationResultPayload.model_validate(raw)
        except ValueError as e:
            logger.error(f"Final answer failed validation: {e}")
            raise OrchestrationError("The model's final answer is missing required investigation result fields.") from e

        reconciled = payload.reconciled()
        if reconciled.verdict != payload.verdict:
            logger.info(
                f"Verdict '{payload.verdict}' adjusted to '{reconciled.verdict}' for score {payload.truthfulness_score}"
            )
        return reconciled

    async def _run_loop(
        self,
        emit: Callable[[AgentAction], None],
        investigation_type: InvestigationType,
        combined: CombinedContent,
        history: List[BaseMessage],
        model: Optional[str],
    ) -> InvestigationResultPayload:
        toolset = self.toolsets[investigation_type]
        tools = {t.name: t for t in self.tools.select(toolset.tools, model=model)}
        llm = self._llm or llm_wrapper.get_llm(model)
        agent = llm.bind_tools(list(tools.values()))
        messages = self._messages(investigation_type, toolset, combined, history)

        for step in range(1, self.settings.MAX_AGENT_STEPS + 1):
            response = await agent.ainvoke(messages)
            calls = self._tool_calls(response)
            if not calls:
                logger.info(f"Agent answered after {step - 1} tool round(s)")
                return self._final_payload(response)
            # Every ToolMessage must answer a call listed on the AIMessage, recovered ones included.
            messages.append(response.model_copy(update={
                "tool_calls": [
                    {"id": c.id, "name": c.name, "args": c.args, "type": "tool_call"} for c in calls
                ],
                "invalid_tool_calls": [],
            }))

            for call in calls:
                emit(AgentAction(
                    id=call.id,
                    action=ACTION_LABELS.get(call.name, f"Running {call.name}"),
                    tool=call.name,
                    status="pending",
                    step=step,
                    args=call.args,
                ))
            # ToolMessages are appended in call order regardless of completion order.
            messages.extend(await asyncio.gather(*(self._execute(c, tools, step, emit) for c in calls)))

        logger.info(f"Step cap of {self.settings.MAX_AGENT_STEPS} reached; requesting final answer without tools")
        messages.append(HumanMessage(content=FORCE_FINAL_PROMPT))
        return self._final_payload(await llm.ainvoke(messages))

    async def _produce(
        self,
        queue: asyncio.Queue,
        investigation_type: InvestigationType,
        combined: CombinedContent,
        history: List[BaseMessage],
        model: Optional[str],
        deadline: Deadline,
    ) -> None:
        actions: List[AgentAction] = []

        def emit(action: AgentAction) -> None:
            actions.append(action)
            queue.put_nowait(AgentActionEvent(action=action))

        try:
            payload = await asyncio.wait_for(
                self._run_loop(emit, investigation_type, combined, history, model),
                timeout=deadline.remaining(),
            )
        except asyncio.TimeoutError:
            logger.error(f"Investigation exceeded the {deadline.seconds:.0f}s budget")
            queue.put_nowait(ErrorEvent(error=timeout_message(deadline)))
            return
        except CheckmateError as e:
            logger.error(f"Investigation failed: {e.message}")
            queue.put_nowait(ErrorEvent(error=e.message))
            return
        except Exception:
            logger.exception("Unexpected error in the investigation agent")
            queue.put_nowait(ErrorEvent(error="The investigation failed due to an unexpected error."))
            return

        result = InvestigationResult(
            **payload.model_dump(),
            investigation_type=investigation_type,
            agent_actions=actions,
            content_sources=combined.sources,
            failed_sources=combined.failures,
        )
        queue.put_nowait(ResultEvent(result=result))

    async def stream(
        self,
        investigation_type: InvestigationType,
        combined: CombinedContent,
        history: Optional[List[BaseMessage]] = None,
        model: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> AsyncIterator[InvestigationEvent]:
        """
        Yields AgentActionEvents as they happen, then one terminal event.
        Closing the generator early cancels the agent and any tool calls in flight.
        """
        deadline = deadline or Deadline(self.settings.MAX_DURATION_SECONDS)
        queue: asyncio.Queue = asyncio.Queue()
        producer = asyncio.create_task(
            self._produce(queue, investigation_type, combined, history or [], model, deadline)
        )
        try:
            while True:
                event = await queue.get()
                yield event
                if is_terminal(event):
                    break
        finally:
            if not producer.done():
                logger.info("Investigation stream closed early; cancelling agent")
                producer.cancel()
