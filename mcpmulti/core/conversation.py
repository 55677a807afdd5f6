"""
Conversation Engine - One query, at most one round of tool calls.

Every query:
1. Sends the user text and the full tool list to the model
2. Returns right away if the model asked for no tools
3. Runs each requested tool, in order, one at a time
4. Sends the tool results back (no tools offered) for the final answer
5. Returns phase-1 text + final text; nothing is kept for the next query
"""

import logging
from enum import Enum
from typing import TYPE_CHECKING, List

from mcpmulti.core.messages import (
    CapabilityResultEntry,
    CapabilityResultList,
    ConversationMessage,
    ModelCapabilityRequest,
    ModelText,
    UserText,
)
from mcpmulti.mcp.dispatcher import Dispatcher
from mcpmulti.mcp.registry import ToolRegistry

if TYPE_CHECKING:
    from mcpmulti.providers.base import Provider

logger = logging.getLogger(__name__)

NO_TEXT_PLACEHOLDER = "The model did not provide a text response."


class QueryPhase(str, Enum):
    AWAITING_INITIAL_RESPONSE = "awaiting_initial_response"
    AWAITING_FINAL_RESPONSE = "awaiting_final_response"
    DONE = "done"


class ConversationEngine:
    """
    Runs the two-phase tool-use protocol against a model backend.

    The engine holds no conversation state between queries; ``phase`` only
    reflects the query currently being processed.
    """

    def __init__(self, provider: "Provider", registry: ToolRegistry, dispatcher: Dispatcher):
        self.provider = provider
        self.registry = registry
        self.dispatcher = dispatcher
        self.phase = QueryPhase.DONE

    def process_query(self, query: str) -> str:
        """
        Answer one query.

        Backend failures in either phase are returned as error text;
        this method does not raise for them.
        """
        messages: List[ConversationMessage] = [UserText(query)]
        tools = self.registry.snapshot()
        if not tools:
            logger.info("No tools available from connected servers. Asking the model directly.")

        try:
            # === PHASE 1: offer tools ===
            self.phase = QueryPhase.AWAITING_INITIAL_RESPONSE
            logger.info("Sending query to the model with %d tool(s)...", len(tools))
            initial = self.provider.complete(list(messages), tools=tools or None)

            initial_text = "\n".join(initial.texts)
            requests = initial.tool_requests

            if not requests:
                logger.info("No tool calls requested by the model.")
                if initial.finish_reason == "tool_use":
                    logger.warning("Model stopped for tool use, but no tool_use blocks were found.")
                return initial_text.strip() or NO_TEXT_PLACEHOLDER

            # === EXECUTE: strictly sequential, in request order ===
            logger.info(
                "Model requested %d tool call(s): %s",
                len(requests),
                ", ".join(r.name for r in requests),
            )
            results: List[CapabilityResultEntry] = []
            for request in requests:
                result = self.dispatcher.invoke(request.name, request.arguments)
                results.append(CapabilityResultEntry(
                    id=request.id,
                    output=result.output,
                    is_error=result.is_error,
                ))

            if initial_text.strip():
                messages.append(ModelText(initial_text))
            messages.append(ModelCapabilityRequest(requests))
            messages.append(CapabilityResultList(results))

            # === PHASE 2: results back, no tools offered ===
            self.phase = QueryPhase.AWAITING_FINAL_RESPONSE
            logger.info("Sending tool results back to the model...")
            final = self.provider.complete(list(messages), tools=None)
            if final.tool_requests:
                logger.warning(
                    "Ignoring %d tool request(s) in the final response; one tool round per query.",
                    len(final.tool_requests),
                )

            final_text = "\n".join(final.texts)
            answer = f"{initial_text}\n{final_text}" if initial_text else final_text
            return answer.strip() or NO_TEXT_PLACEHOLDER

        except Exception as e:
            logger.error("An error occurred during query processing: %s", e)
            return f"An error occurred: {e}"

        finally:
            self.phase = QueryPhase.DONE
