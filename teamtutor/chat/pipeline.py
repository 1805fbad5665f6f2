"""One chat turn: memory -> standalone question -> retrieval -> prompt -> reply.

Transient failures degrade instead of failing the turn:

- cache errors read as misses and failed write-backs are only logged;
- when retrieval comes back empty or the vector store is unreachable, the
  cached context snapshot for the same user, role and task is used, and
  without one the prompt carries no retrieved context;
- a failed standalone-question rewrite falls back to the learner's message.

Turns of one session are serialized on the session's ``turn_lock``.

Embedding failures and contract errors (missing identifiers, dimension
mismatch) propagate to the caller.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from ..cache.keys import CacheKind, cache_key
from ..cache.store import CacheStore
from ..config_runtime import get_config
from ..context_assembler import combine_documents
from ..errors import CacheError, IndexQueryFailure
from ..llm import TextGenerator
from ..memory.conversation import ConversationMemoryManager, SessionMemory, SessionState
from ..memory.summarizer import format_turns
from ..metrics import PIPELINE_DEGRADED
from ..team import StepContext, TeamMember, get_member, standalone_question_prompt, team_member_prompt
from ..vector_store.base import ScoredChunk, VectorIndex

logger = logging.getLogger(__name__)

# turns handed to the standalone-question rewrite
_REWRITE_HISTORY_TURNS = 4


@dataclass
class ChatRequest:
    user_id: str
    task_context: str
    message: str
    agent_role: str
    step: StepContext


@dataclass
class PreparedTurn:
    session_id: str
    member: TeamMember
    standalone_question: str
    retrieved: list[ScoredChunk]
    context_block: str
    prompt: str
    degraded: list[str] = field(default_factory=list)


@dataclass
class TurnResult:
    reply: str
    prepared: PreparedTurn
    elapsed_ms: float = 0.0


def session_id_for(user_id: str, task_context: str) -> str:
    """Memory-map key for a learner's conversation in one task context."""
    return cache_key(CacheKind.CONVERSATION, user_id, task_context)


class ChatPipeline:
    def __init__(
        self,
        memories: ConversationMemoryManager,
        index: VectorIndex,
        generator: TextGenerator,
        cache: CacheStore | None = None,
        *,
        k: int | None = None,
    ) -> None:
        self.memories = memories
        self.index = index
        self.generator = generator
        self.cache = cache
        self.k = k or get_config().retrieval.k

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    async def _hydrate(
        self, req: ChatRequest, memory: SessionMemory, degraded: list[str]
    ) -> None:
        if memory.state is not SessionState.EMPTY or self.cache is None:
            return
        # first use in this process: hydrate from the conversation snapshot
        try:
            snap = await self.cache.get_conversation(req.user_id, req.task_context)
        except CacheError as e:
            degraded.append("hydrate")
            PIPELINE_DEGRADED.labels("hydrate").inc()
            logger.warning(
                "chat.hydrate_degraded",
                extra={"meta": {"session_id": memory.session_id, "error": str(e)}},
            )
            return
        if snap is not None and memory.state is SessionState.EMPTY:
            await memory.restore(snap)
            logger.debug(
                "chat.hydrated",
                extra={"meta": {"session_id": memory.session_id, "turns": len(memory.turns)}},
            )

    async def _standalone_question(
        self, message: str, memory: SessionMemory, degraded: list[str]
    ) -> str:
        history = format_turns(memory.recent_messages(_REWRITE_HISTORY_TURNS))
        try:
            question = (
                await self.generator.generate(standalone_question_prompt(message, history))
            ).strip()
        except Exception as e:
            degraded.append("standalone_question")
            PIPELINE_DEGRADED.labels("standalone_question").inc()
            logger.warning("chat.standalone_degraded", extra={"meta": {"error": str(e)}})
            return message
        return question or message

    async def _retrieve(self, question: str, degraded: list[str]) -> list[ScoredChunk]:
        try:
            return await self.index.query(question, k=self.k)
        except IndexQueryFailure as e:
            degraded.append("retrieval")
            PIPELINE_DEGRADED.labels("retrieval").inc()
            logger.warning(
                "chat.retrieval_degraded",
                extra={"meta": {"backend": self.index.backend, "error": str(e)}},
            )
            return []

    async def _context(
        self, req: ChatRequest, question: str, degraded: list[str]
    ) -> tuple[list[ScoredChunk], str]:
        """Freshly retrieved context, or the cached snapshot when retrieval finds nothing."""
        cached: str | None = None
        if self.cache is not None:
            try:
                cached = await self.cache.get_context(
                    req.user_id, req.agent_role, req.step.task_id
                )
            except CacheError as e:
                degraded.append("context_cache")
                PIPELINE_DEGRADED.labels("context_cache").inc()
                logger.warning("chat.context_cache_degraded", extra={"meta": {"error": str(e)}})
        retrieved = await self._retrieve(question, degraded)
        if retrieved:
            return retrieved, combine_documents(retrieved)
        if cached:
            logger.info(
                "chat.context_from_cache",
                extra={"meta": {"user_id": req.user_id, "task_id": req.step.task_id}},
            )
            return [], cached
        return [], ""

    async def _insights(self, req: ChatRequest, degraded: list[str]) -> str:
        if self.cache is None:
            return ""
        notes: list[str] = []
        try:
            insights = await self.cache.get_agent_insights(req.user_id, req.agent_role)
            user_data = await self.cache.get_user_data(req.user_id)
        except CacheError as e:
            degraded.append("cache_read")
            PIPELINE_DEGRADED.labels("cache_read").inc()
            logger.warning("chat.cache_read_degraded", extra={"meta": {"error": str(e)}})
            return ""
        if insights:
            notes.append(insights)
        if user_data is not None and user_data.user_progress:
            notes.append(
                "Progress so far: " + "; ".join(str(p) for p in user_data.user_progress[-5:])
            )
        return "\n".join(notes)

    async def _prepare(
        self, req: ChatRequest, member: TeamMember, memory: SessionMemory
    ) -> PreparedTurn:
        degraded: list[str] = []
        await self._hydrate(req, memory, degraded)
        question = await self._standalone_question(req.message, memory, degraded)
        retrieved, context_block = await self._context(req, question, degraded)
        insights = await self._insights(req, degraded)
        variables = memory.load_memory_variables()
        prompt = team_member_prompt(
            member,
            req.step,
            retrieved_context=context_block,
            question=req.message,
            standalone_question=question,
            summary=variables["summary"],
            history=variables["history"],
            insights=insights,
        )
        return PreparedTurn(
            session_id=memory.session_id,
            member=member,
            standalone_question=question,
            retrieved=retrieved,
            context_block=context_block,
            prompt=prompt,
            degraded=degraded,
        )

    def _session(self, req: ChatRequest) -> tuple[TeamMember, SessionMemory]:
        member = get_member(req.agent_role)
        return member, self.memories.get_memory(session_id_for(req.user_id, req.task_context))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def prepare_turn(self, req: ChatRequest) -> PreparedTurn:
        member, memory = self._session(req)
        async with memory.turn_lock:
            return await self._prepare(req, member, memory)

    async def run_turn(self, req: ChatRequest) -> TurnResult:
        """Answer one learner message.

        Turns of the same session run one at a time in submission order, from
        reading memory through the cache write-back.
        """
        t0 = time.perf_counter()
        member, memory = self._session(req)
        async with memory.turn_lock:
            prepared = await self._prepare(req, member, memory)
            reply = await self.generator.generate(prepared.prompt)
            await memory.save_context(req.message, reply)
            await self._write_back(req, memory, prepared)
        elapsed = (time.perf_counter() - t0) * 1000.0
        logger.info(
            "chat.turn",
            extra={
                "meta": {
                    "session_id": prepared.session_id,
                    "agent_role": req.agent_role,
                    "retrieved": len(prepared.retrieved),
                    "degraded": prepared.degraded,
                    "memory": memory.to_dict(),
                    "elapsed_ms": round(elapsed, 2),
                }
            },
        )
        return TurnResult(reply=reply, prepared=prepared, elapsed_ms=elapsed)

    async def _write_back(
        self, req: ChatRequest, memory: SessionMemory, prepared: PreparedTurn
    ) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.set_conversation(memory.snapshot(req.user_id, req.task_context))
            if prepared.retrieved:
                await self.cache.set_context(
                    req.user_id, req.agent_role, req.step.task_id, prepared.context_block
                )
        except CacheError as e:
            prepared.degraded.append("write_back")
            PIPELINE_DEGRADED.labels("write_back").inc()
            logger.warning(
                "chat.write_back_degraded",
                extra={"meta": {"session_id": prepared.session_id, "error": str(e)}},
            )


__all__ = [
    "ChatPipeline",
    "ChatRequest",
    "PreparedTurn",
    "TurnResult",
    "session_id_for",
]
