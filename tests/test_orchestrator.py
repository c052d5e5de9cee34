"""
Tests for the tiered answer path and the engine around it.
"""

import asyncio
import logging
import time

import pytest

from hybrid_rag.engine import build_engine
from hybrid_rag.errors import CompletionError, DimensionMismatchError
from hybrid_rag.models import Document
from hybrid_rag.retrieval import ConversationMemory, HistoryLog, Route
from hybrid_rag.retrieval.llm import CompletionProvider

from conftest import HashingEmbedder, RecordingCompletion

SCHEDULE_QUESTION = "¿Cuál es el horario de Cálculo I?"
UNRELATED_QUESTION = "¿Quién dirige la orquesta sinfónica?"


class GatedCompletion(CompletionProvider):
    """Blocks until released, to observe behaviour while a request is in flight."""

    def __init__(self, answer: str = "Lunes 8-10am"):
        self.answer = answer
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def complete(self, system_prompt, user_prompt):
        self.started.set()
        await self.release.wait()
        return self.answer


class TestTieredAnswers:
    """Tests for routing between caches, lexical search and the semantic fallback."""

    def test_schedule_question_uses_lexical_context(self, engine, completion, schedule_doc, scholarship_doc):
        """The lexical route sends the schedule line to the model."""
        async def run():
            await engine.ingest(schedule_doc)
            await engine.ingest(scholarship_doc)
            result = await engine.ask(SCHEDULE_QUESTION)
            await engine.flush()
            return result

        result = asyncio.run(run())

        assert result.route == Route.LEXICAL
        assert result.completion_called
        assert result.answer == "Respuesta generada"
        assert result.used_documents[0] == "doc-a"
        assert result.sources[0].doc_id == "doc-a"
        assert len(completion.calls) == 1
        system_prompt, prompt = completion.calls[0]
        assert "Lunes 8-10am, Aula 301" in prompt
        assert prompt.startswith("Contexto:\n")
        assert prompt.endswith(f"Pregunta: {SCHEDULE_QUESTION}")
        assert system_prompt

    def test_repeated_question_is_served_from_cache(self, engine, completion, schedule_doc):
        """The second identical question does not call the model."""
        async def run():
            await engine.ingest(schedule_doc)
            first = await engine.ask(SCHEDULE_QUESTION)
            second = await engine.ask(SCHEDULE_QUESTION)
            await engine.flush()
            return first, second

        first, second = asyncio.run(run())

        assert first.route == Route.LEXICAL
        assert second.route == Route.RESPONSE_CACHE
        assert second.answer == first.answer
        assert second.cached_similarity == pytest.approx(1.0)
        assert not second.completion_called
        assert len(completion.calls) == 1
        assert engine.response_cache.stats()["hits"] == 1

    def test_corpus_change_invalidates_cached_answer(self, engine, completion, schedule_doc):
        """Re-ingesting a document makes earlier answers ineligible."""
        async def run():
            await engine.ingest(schedule_doc)
            await engine.ask(SCHEDULE_QUESTION)
            hash_before = engine.corpus_hash()
            await engine.ingest(Document(
                doc_id="doc-a",
                name="horarios.txt",
                text="# Horarios de Clase\nCálculo I: Lunes 8-10am, Aula 305",
            ))
            result = await engine.ask(SCHEDULE_QUESTION)
            await engine.flush()
            return hash_before, result

        hash_before, result = asyncio.run(run())

        assert engine.corpus_hash() != hash_before
        assert result.route != Route.RESPONSE_CACHE
        assert len(completion.calls) == 2
        assert "Aula 305" in completion.calls[1][1]
        assert len(engine.response_cache) == 2

    def test_faq_answers_without_completion(self, engine, completion, schedule_doc):
        """A matching FAQ is returned as-is and counted."""
        async def run():
            await engine.ingest(schedule_doc)
            faq = await engine.add_faq("¿Dónde está la biblioteca?", "En el edificio B", category="campus")
            result = await engine.ask("¿Dónde está la biblioteca?")
            await engine.flush()
            return faq, result

        faq, result = asyncio.run(run())

        assert result.route == Route.FAQ
        assert result.answer == "En el edificio B"
        assert not result.completion_called
        assert completion.calls == []
        assert engine.faq_cache.get_entry(faq.entry_id).hit_count == 1

    def test_disabled_faq_falls_through(self, engine, completion, schedule_doc):
        """Disabled FAQs never answer."""
        async def run():
            await engine.ingest(schedule_doc)
            faq = await engine.add_faq("¿Dónde está la biblioteca?", "En el edificio B")
            await engine.update_faq(faq.entry_id, enabled=False)
            result = await engine.ask("¿Dónde está la biblioteca?")
            await engine.flush()
            return result

        result = asyncio.run(run())

        assert result.route != Route.FAQ
        assert len(completion.calls) == 1

    def test_unmatched_question_uses_semantic_fallback(self, engine, completion, schedule_doc, scholarship_doc):
        """Without a lexical match the fallback still calls the model."""
        async def run():
            await engine.ingest(schedule_doc)
            await engine.ingest(scholarship_doc)
            result = await engine.ask(UNRELATED_QUESTION)
            await engine.flush()
            return result

        result = asyncio.run(run())

        assert result.route == Route.SEMANTIC
        assert result.completion_called
        assert completion.calls[0][1].endswith(f"Pregunta: {UNRELATED_QUESTION}")

    def test_empty_corpus_still_answers(self, engine, completion):
        """With no documents the semantic route runs on an empty context."""
        result = asyncio.run(engine.ask(UNRELATED_QUESTION))
        assert result.route == Route.SEMANTIC
        assert completion.calls[0][1] == f"Pregunta: {UNRELATED_QUESTION}"

    def test_empty_question_is_rejected(self, engine):
        with pytest.raises(ValueError):
            asyncio.run(engine.ask("   "))

    def test_cache_disabled_skips_cache_tiers(self, tmp_path, embedder, completion, schedule_doc):
        """With caching disabled every question reaches the model."""
        from hybrid_rag.retrieval import RetrievalConfig

        engine = build_engine(
            embedder, completion, data_dir=tmp_path / "data",
            config=RetrievalConfig(cache_enabled=False),
        )

        async def run():
            await engine.ingest(schedule_doc)
            await engine.ask(SCHEDULE_QUESTION)
            await engine.ask(SCHEDULE_QUESTION)
            await engine.flush()

        asyncio.run(run())

        assert len(completion.calls) == 2
        assert len(engine.response_cache) == 0


class TestFailures:
    """Tests for provider failures."""

    def test_completion_failure_propagates(self, tmp_path, embedder, failing_completion, schedule_doc):
        """A failed completion is an error, and nothing is cached or logged."""
        engine = build_engine(embedder, failing_completion, data_dir=tmp_path / "data")

        async def run():
            await engine.ingest(schedule_doc)
            try:
                await engine.ask(SCHEDULE_QUESTION)
            finally:
                await engine.flush()

        with pytest.raises(CompletionError):
            asyncio.run(run())

        assert failing_completion.calls == 1
        assert len(engine.response_cache) == 0
        assert engine.history.tail() == []

    def test_embedding_failure_degrades_to_lexical(self, tmp_path, failing_embedder, completion, schedule_doc):
        """Without embeddings the cache tiers are skipped, lexical search still answers."""
        engine = build_engine(failing_embedder, completion, data_dir=tmp_path / "data")

        async def run():
            report = await engine.ingest(schedule_doc)
            result = await engine.ask(SCHEDULE_QUESTION)
            await engine.flush()
            return report, result

        report, result = asyncio.run(run())

        assert report.embedded == 0
        assert report.lexical_chunks > 0
        assert result.route == Route.LEXICAL
        assert len(engine.vector_store) == 0
        assert len(engine.response_cache) == 0

    def test_cancelled_request_still_populates_caches(self, tmp_path, embedder, schedule_doc):
        """The completion and its bookkeeping outlive a cancelled caller."""
        async def run():
            provider = GatedCompletion()
            engine = build_engine(embedder, provider, data_dir=tmp_path / "data")
            await engine.ingest(schedule_doc)

            request = asyncio.ensure_future(engine.ask(SCHEDULE_QUESTION))
            await provider.started.wait()
            request.cancel()
            with pytest.raises(asyncio.CancelledError):
                await request

            provider.release.set()
            await engine.flush()
            return engine

        engine = asyncio.run(run())

        assert len(engine.response_cache) == 1
        assert engine.response_cache.entries[0].payload == "Lunes 8-10am"
        assert len(engine.history.tail()) == 1

    def test_completion_failure_after_cancel_is_logged(self, tmp_path, embedder, schedule_doc, caplog):
        """A completion that fails after its caller left is reported in the log."""
        class GatedFailure(GatedCompletion):
            async def complete(self, system_prompt, user_prompt):
                await super().complete(system_prompt, user_prompt)
                raise CompletionError("model unavailable")

        async def run():
            provider = GatedFailure()
            engine = build_engine(embedder, provider, data_dir=tmp_path / "data")
            await engine.ingest(schedule_doc)

            request = asyncio.ensure_future(engine.ask(SCHEDULE_QUESTION))
            await provider.started.wait()
            request.cancel()
            with pytest.raises(asyncio.CancelledError):
                await request

            provider.release.set()
            await engine.flush()
            return engine

        with caplog.at_level(logging.ERROR, logger="hybrid_rag.retrieval"):
            engine = asyncio.run(run())

        assert "Background task failed" in caplog.text
        assert "model unavailable" in caplog.text
        assert len(engine.response_cache) == 0


class TestSemanticContext:
    """Tests for the semantic fallback context."""

    def test_notes_only_for_matching_documents(self, engine, schedule_doc, scholarship_doc):
        context = engine.orchestrator.build_semantic_context(
            "¿Dónde se entregan las solicitudes de apoyo?",
            [schedule_doc, scholarship_doc],
            embedding=None,
        )

        assert context.used_documents == ["doc-b"]
        assert context.text.startswith("Documentos: becas.txt\nTexto extraído (becas.txt):")
        assert "horarios.txt" not in context.text
        assert "Fragmentos relevantes:\nLas solicitudes de apoyo económico" in context.text
        assert "DOCUMENTO COMPLETO" not in context.text

    def test_short_question_includes_newest_whole_document(self, engine, scholarship_doc):
        newer = Document(
            doc_id="doc-c",
            name="convocatoria.txt",
            text="Convocatoria de becas 2026\nCierre: 30 de marzo",
            updated_at="2026-03-01T00:00:00+00:00",
        )
        context = engine.orchestrator.build_semantic_context("Becas", [scholarship_doc, newer], embedding=None)

        assert "DOCUMENTO COMPLETO PARA RESPONDER:\nConvocatoria de becas 2026" in context.text
        assert set(context.used_documents) == {"doc-b", "doc-c"}

    def test_keyword_snippets_are_capped(self, engine):
        long_line = "horario " + "x" * 600
        document = Document(
            doc_id="d",
            name="d",
            text="\n".join([f"horario linea {i}" for i in range(10)] + [long_line]),
        )
        snippets = engine.orchestrator.keyword_snippets([document], ["horario"])

        assert snippets == [f"horario linea {i}" for i in range(6)]

    def test_vector_passages_are_used_when_available(self, engine, embedder, schedule_doc):
        async def run():
            await engine.ingest(schedule_doc)
            embedding = await embedder.embed("Cálculo I: Lunes 8-10am, Aula 301")
            return engine.orchestrator.build_semantic_context(UNRELATED_QUESTION, [schedule_doc], embedding)

        context = asyncio.run(run())

        assert context.passages
        assert context.passages[0].doc_id == "doc-a"
        assert "Fragmentos relevantes:" in context.text
        assert "doc-a" in context.used_documents


class TestHistoryAndMemory:
    """Tests for the answer history and conversation memory."""

    def test_history_and_memory_are_recorded(self, engine, completion, schedule_doc, scholarship_doc, tmp_path):
        async def run():
            await engine.ingest(schedule_doc)
            await engine.ingest(scholarship_doc)
            await engine.ask(SCHEDULE_QUESTION, requester_id="user-1")
            await engine.orchestrator.drain()
            await engine.ask(UNRELATED_QUESTION, requester_id="user-1")
            await engine.flush()

        asyncio.run(run())

        records = engine.history.tail()
        assert [r["route"] for r in records] == ["lexical", "semantic"]
        assert records[0]["requester_id"] == "user-1"
        assert records[0]["used_documents"][0] == "doc-a"

        memory = engine.memory.get("user-1")
        assert memory.startswith(f"Q: {SCHEDULE_QUESTION}\nA: Respuesta generada")
        assert "Memoria de conversación:\nQ: " in completion.calls[1][1]
        assert (tmp_path / "data" / "memory.json").exists()
        assert (tmp_path / "data" / "history.jsonl").exists()

    def test_anonymous_questions_have_no_memory(self, engine, completion, schedule_doc):
        async def run():
            await engine.ingest(schedule_doc)
            await engine.ask(SCHEDULE_QUESTION)
            await engine.flush()

        asyncio.run(run())
        assert engine.memory.memories == {}

    def test_memory_is_summarized_when_long(self):
        memory = ConversationMemory(summarize_above=50, summary_max_chars=20)
        provider = RecordingCompletion("resumen de la conversacion anterior")

        result = asyncio.run(memory.update("u", "pregunta " * 10, "respuesta " * 10, provider))

        assert result == "resumen de la conver"
        assert memory.get("u") == result
        assert provider.calls[0][1].startswith("Q: pregunta")

    def test_memory_keeps_tail_without_summary(self, failing_completion):
        memory = ConversationMemory(summarize_above=50, fallback_chars=30)

        without_provider = asyncio.run(memory.update("a", "pregunta " * 10, "respuesta final"))
        with_failure = asyncio.run(memory.update("b", "pregunta " * 10, "respuesta final", failing_completion))

        assert without_provider == with_failure
        assert len(without_provider) == 30
        assert without_provider.endswith("A: respuesta final")

    def test_short_memory_accumulates(self):
        memory = ConversationMemory()
        asyncio.run(memory.update("u", "hola", "buenas"))
        asyncio.run(memory.update("u", "que tal", "bien"))
        assert memory.get("u") == "Q: hola\nA: buenas\nQ: que tal\nA: bien"

    def test_history_skips_malformed_lines(self, tmp_path):
        path = tmp_path / "history.jsonl"
        log = HistoryLog(path)
        log.append("pregunta", "respuesta", "lexical")
        with open(path, "a", encoding="utf-8") as f:
            f.write("{roto\n")
        log.append("otra", "respuesta", "faq")

        assert [r["question"] for r in log.tail()] == ["pregunta", "otra"]


class TestEngineLifecycle:
    """Tests for ingestion, removal and persistence across restarts."""

    def test_remove_document(self, engine, schedule_doc):
        async def run():
            await engine.ingest(schedule_doc)
            removed = await engine.remove("doc-a")
            unknown = await engine.remove("doc-a")
            await engine.flush()
            return removed, unknown

        removed, unknown = asyncio.run(run())

        assert removed
        assert not unknown
        assert len(engine.registry) == 0
        assert len(engine.lexical_index) == 0
        assert len(engine.vector_store) == 0

    def test_reingest_replaces_document(self, engine, schedule_doc):
        async def run():
            first = await engine.ingest(schedule_doc)
            second = await engine.ingest(Document(
                doc_id="doc-a", name="horarios.txt", text="# Horarios\nFísica: Martes",
            ))
            await engine.flush()
            return first, second

        first, second = asyncio.run(run())

        assert not first.replaced
        assert second.replaced
        assert len(engine.registry) == 1
        assert engine.vector_store.stats()["unique_documents"] == 1
        assert len(engine.vector_store) == second.embedded

    def test_state_survives_restart(self, tmp_path, embedder, completion, schedule_doc):
        """Documents, indices and cached answers reload from the data directory."""
        data_dir = tmp_path / "data"
        engine = build_engine(embedder, completion, data_dir=data_dir)

        async def first_run():
            await engine.ingest(schedule_doc)
            await engine.ask(SCHEDULE_QUESTION)
            await engine.flush()

        asyncio.run(first_run())

        restarted = build_engine(embedder, RecordingCompletion("otra"), data_dir=data_dir)
        assert restarted.loaded["documents"]
        assert len(restarted.registry) == 1
        assert len(restarted.lexical_index) == len(engine.lexical_index)
        assert len(restarted.vector_store) == len(engine.vector_store)
        assert restarted.corpus_hash() == engine.corpus_hash()

        result = asyncio.run(restarted.ask(SCHEDULE_QUESTION))
        assert result.route == Route.RESPONSE_CACHE
        assert result.answer == "Respuesta generada"

    def test_maintenance_operations(self, engine, schedule_doc):
        async def run():
            await engine.ingest(schedule_doc)
            await engine.ask(SCHEDULE_QUESTION)
            await engine.flush()

        asyncio.run(run())

        stats = engine.stats()
        assert stats["documents"] == 1
        assert stats["response_cache"]["entries"] == 1

        assert engine.cleanup()["response_cache"] == {"removed": 0, "remaining": 1}
        assert engine.invalidate() == {"corpus_hash": engine.corpus_hash(), "removed": 1}
        assert len(engine.response_cache) == 0
        assert engine.rebuild_vectors()["rebuilt"]

    def test_new_embedding_size_after_removing_everything(self, tmp_path, completion, schedule_doc, scholarship_doc):
        """Once the corpus is emptied, a model with another dimension can ingest again."""
        data_dir = tmp_path / "data"
        engine = build_engine(HashingEmbedder(4), completion, data_dir=data_dir)

        async def empty_corpus():
            await engine.ingest(schedule_doc)
            await engine.remove("doc-a")
            await engine.flush()

        asyncio.run(empty_corpus())
        assert engine.vector_store.dimension is None

        restarted = build_engine(HashingEmbedder(6), completion, data_dir=data_dir)
        report = asyncio.run(restarted.ingest(scholarship_doc))
        assert report.embedded > 0
        assert restarted.vector_store.dimension == 6

    def test_dimension_conflict_leaves_state_untouched(self, tmp_path, completion, schedule_doc, scholarship_doc):
        """An ingest whose embeddings do not fit the index changes nothing."""
        data_dir = tmp_path / "data"
        engine = build_engine(HashingEmbedder(4), completion, data_dir=data_dir)

        async def first_run():
            await engine.ingest(schedule_doc)
            await engine.flush()

        asyncio.run(first_run())
        vectors = len(engine.vector_store)

        restarted = build_engine(HashingEmbedder(6), completion, data_dir=data_dir)
        with pytest.raises(DimensionMismatchError):
            asyncio.run(restarted.ingest(scholarship_doc))

        assert "doc-b" not in restarted.registry
        assert "doc-b" not in restarted.lexical_index.documents
        assert len(restarted.vector_store) == vectors
        assert restarted.vector_store.dimension == 4


class SlowCompletion(CompletionProvider):
    """Sleeps like a remote model and records how many calls overlap."""

    def __init__(self, delay: float = 0.3):
        self.delay = delay
        self.in_flight = 0
        self.peak = 0

    async def complete(self, system_prompt, user_prompt):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        return f"respuesta {len(user_prompt)}"


class TestConcurrentQuestions:
    """Tests for questions answered at the same time."""

    def test_questions_overlap_while_waiting_on_the_model(self, tmp_path, embedder, schedule_doc, scholarship_doc):
        provider = SlowCompletion()
        engine = build_engine(embedder, provider, data_dir=tmp_path / "data")
        questions = [SCHEDULE_QUESTION, "¿Qué cubre la beca de excelencia?"]

        async def run():
            await engine.ingest(schedule_doc)
            await engine.ingest(scholarship_doc)
            started = time.perf_counter()
            results = await asyncio.gather(*(engine.ask(q) for q in questions))
            elapsed = time.perf_counter() - started
            await engine.flush()
            return results, elapsed

        results, elapsed = asyncio.run(run())

        assert [r.question for r in results] == questions
        assert all(r.completion_called and r.answer for r in results)
        assert provider.peak == 2
        assert elapsed < 2 * provider.delay
        assert sorted(e.question for e in engine.response_cache.entries) == sorted(questions)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
