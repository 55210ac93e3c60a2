"""
LangGraph Workflow - runs one AI-assisted action end to end
"""
import time
from datetime import datetime
from typing import Optional

from langgraph.graph import StateGraph, END

from agents.action_catalog import ActionCatalog, ActionDescriptor, action_catalog
from agents.context_builder import ContextBuilder, context_builder
from agents.merger_agent import MergerAgent, merger_agent
from graph.state import ActionState
from schemas.canvas_schemas import ActionOutcome
from utils.answer_store import AnswerStore, answer_store
from utils.exceptions import ActionUnavailable, AssistError, EmptyReply
from utils.llm_client import LLMClient, llm_client
from utils.logger import action_context, logger


class ActionWorkflow:
    """
    LangGraph workflow for AI-assisted form actions

    Graph Flow:
    START → context → generate → extract → validate → END

    Any node may raise an ``AssistError``; ``run_action`` turns it into a failed
    ``ActionOutcome``. The merge runs after the graph so fill-empty-only checks
    use the answers present when the reply arrives, not when it was requested.
    """

    def __init__(
        self,
        catalog: Optional[ActionCatalog] = None,
        builder: Optional[ContextBuilder] = None,
        merger: Optional[MergerAgent] = None,
        client: Optional[LLMClient] = None,
    ):
        self.catalog = catalog or action_catalog
        self.builder = builder or context_builder
        self.merger = merger or merger_agent
        self.client = client or llm_client

        self.graph = self._build_graph()
        self.compiled_graph = None

        logger.info("ActionWorkflow initialized")

    def _initialize_state(self, action_name: str, answers: dict, brief: Optional[str]) -> ActionState:
        return ActionState(
            action_name=action_name,
            answers=answers,
            brief=brief,
            prompt=None,
            model=None,
            reply_text=None,
            candidates=None,
            start_time=datetime.utcnow(),
            agent_timings={},
        )

    def _resolve(self, state: ActionState) -> ActionDescriptor:
        action = self.catalog.get(state["action_name"])
        if action is None:
            raise ActionUnavailable(detail=f"unknown action {state['action_name']!r}")
        return action

    # Node functions
    def _context_node(self, state: ActionState) -> ActionState:
        """Prompt assembly node"""
        logger.info("Workflow: Executing context node")
        action = self._resolve(state)
        self.catalog.ensure_runnable(action)

        open_action = not action.page_targeted
        until_step = self.builder.registry.summary_step_index if open_action else action.step_index
        state["prompt"] = self.builder.build_prompt(
            self.catalog.prompt_for(action),
            state["answers"],
            until_step,
            brief=state.get("brief"),
            include_catalog=open_action,
        )
        return state

    def _generate_node(self, state: ActionState) -> ActionState:
        """Provider call node"""
        logger.info("Workflow: Executing generate node")
        action = self._resolve(state)
        started = time.time()
        response = self.client.generate(prompt=state["prompt"], model=action.model)
        state["agent_timings"]["generate"] = time.time() - started
        state["model"] = response.get("model", action.model)
        logger.info(
            f"Workflow: {response.get('provider')} replied",
            latency=response.get("latency"),
            tokens=response.get("tokens"),
        )

        # the client has already flattened choices[0].message.content
        reply_text = response.get("content") or ""
        if not reply_text.strip():
            raise EmptyReply()
        state["reply_text"] = reply_text
        return state

    def _extract_node(self, state: ActionState) -> ActionState:
        """Structured extraction node"""
        logger.info("Workflow: Executing extract node")
        action = self._resolve(state)
        started = time.time()
        state["candidates"] = action.parse(state["reply_text"], action.step_index)
        state["agent_timings"]["extract"] = time.time() - started
        return state

    def _validate_node(self, state: ActionState) -> ActionState:
        """Registry validation node"""
        logger.info("Workflow: Executing validate node")
        state["candidates"] = self.merger.validate(state["candidates"] or {})
        return state

    def _build_graph(self) -> StateGraph:
        """
        Build LangGraph state graph

        Returns:
            StateGraph instance
        """
        workflow = StateGraph(ActionState)

        workflow.add_node("context", self._context_node)
        workflow.add_node("generate", self._generate_node)
        workflow.add_node("extract", self._extract_node)
        workflow.add_node("validate", self._validate_node)

        workflow.set_entry_point("context")
        workflow.add_edge("context", "generate")
        workflow.add_edge("generate", "extract")
        workflow.add_edge("extract", "validate")
        workflow.add_edge("validate", END)

        logger.info("LangGraph workflow built successfully")
        return workflow

    def compile(self) -> None:
        """Compile the graph for execution"""
        if self.compiled_graph is None:
            self.compiled_graph = self.graph.compile()
            logger.info("Workflow compiled")

    def run_action(
        self,
        action_name: str,
        store: Optional[AnswerStore] = None,
        brief: Optional[str] = None,
    ) -> ActionOutcome:
        """
        Run one AI action and merge its result into the answer store

        Args:
            action_name: Catalog name of the action
            store: Answer store to read context from and merge into
            brief: User instruction for the brief-driven action

        Returns:
            ActionOutcome with the applied updates or the failure reason
        """
        with action_context(action_name):
            return self._run_action(action_name, store or answer_store, brief)

    def _run_action(self, action_name: str, store: AnswerStore, brief: Optional[str]) -> ActionOutcome:
        action = self.catalog.get(action_name)
        start_time = time.time()
        logger.info(f"Running AI action: {action_name}")

        try:
            if action is None:
                raise ActionUnavailable(detail=f"unknown action {action_name!r}")
            if self.compiled_graph is None:
                self.compile()

            final_state = self.compiled_graph.invoke(
                self._initialize_state(action_name, store.snapshot(), brief)
            )
            updates = store.merge(final_state["candidates"] or {}, action.policy, merger=self.merger)

        except AssistError as e:
            latency_ms = (time.time() - start_time) * 1000
            logger.warning(
                f"AI action failed: {action_name}",
                error_code=e.code,
                error=str(e),
                latency_ms=latency_ms,
            )
            return ActionOutcome(
                action=action_name,
                success=False,
                message=e.user_message,
                error_code=e.code,
                model=action.model if action else None,
                latency_ms=latency_ms,
            )

        latency_ms = (time.time() - start_time) * 1000
        if action.page_targeted:
            message = "Investigación completada con IA."
        else:
            message = f"Completamos {len(updates)} campos con IA."

        logger.info(
            f"AI action complete: {action_name}",
            fields=len(updates),
            latency_ms=latency_ms,
        )
        return ActionOutcome(
            action=action_name,
            success=True,
            message=message,
            updates=updates,
            model=final_state.get("model"),
            latency_ms=latency_ms,
        )


# Global workflow instance
workflow = ActionWorkflow()
