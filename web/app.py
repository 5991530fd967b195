"""
Flask web server for Intelli Maker.

Routes
──────
POST /api/chat                               Relay: {systemPrompt, userPrompt} → {content}
POST /api/generate                           Relay: {prompt} → {content}
POST /api/session                            Start a generation session for {topic}
GET  /api/session                            Snapshot of the active session (JSON)
POST /api/session/sections/<name>/retry      Re-run a single section
GET  /api/session/stream                     SSE: section updates until the session settles
"""

from __future__ import annotations

import json
import logging
import os
import queue
import sys
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, Response, jsonify, request, stream_with_context

# Allow running as `python web/app.py` from the project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

load_dotenv()

from config.settings import Settings
from intellimaker.errors import ProviderError
from intellimaker.models import SectionName
from intellimaker.orchestrator import Orchestrator, SectionBusyError
from intellimaker.providers import ChatCompletionClient, Prompt, PromptCompletionClient
from intellimaker.runner import BackgroundLoop
from intellimaker.state import StateChange

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

#: Seconds between SSE keep-alive comments while waiting for updates.
STREAM_KEEPALIVE = 15.0


def _provider_error_response(exc: ProviderError):
    status = 504 if exc.timed_out else (exc.status_code or 500)
    return jsonify({"error": str(exc), "status": status}), status


def _stream_event(change: StateChange) -> Optional[dict]:
    """Map a state change to the SSE event sent to the browser."""
    if change.kind == "section":
        return {"type": "section", "section": change.section.value, "data": change.state}
    if change.kind == "progress":
        return {"type": "progress", "data": change.state}
    if change.kind == "session_settled":
        return {"type": "settled", "data": change.state}
    return None


def create_app(
    settings: Optional[Settings] = None,
    chat_client: Optional[ChatCompletionClient] = None,
    prompt_client: Optional[PromptCompletionClient] = None,
    orchestrator: Optional[Orchestrator] = None,
    runner: Optional[BackgroundLoop] = None,
) -> Flask:
    """Build the Flask app; every collaborator can be injected for tests."""
    settings = settings or Settings()
    chat_client = chat_client or ChatCompletionClient(
        api_key=settings.perplexity_api_key,
        model=settings.chat_model,
        api_url=settings.chat_api_url,
        timeout=settings.provider_timeout,
    )
    prompt_client = prompt_client or PromptCompletionClient(
        api_key=settings.anthropic_api_key,
        model=settings.prompt_model,
        timeout=settings.provider_timeout,
    )
    orchestrator = orchestrator or Orchestrator.from_clients(chat_client, prompt_client)
    runner = runner or BackgroundLoop()

    app = Flask(__name__)
    app.config["SETTINGS"] = settings
    app.extensions["orchestrator"] = orchestrator
    app.extensions["runner"] = runner

    # ── Provider relays ────────────────────────────────────────────────────

    @app.route("/api/chat", methods=["POST"])
    def relay_chat():
        """Forward a system/user prompt pair to the chat-completion provider."""
        if not settings.perplexity_api_key:
            logger.error("PERPLEXITY_API_KEY is not set")
            return jsonify({"error": "API key is not configured", "status": 500}), 500
        body = request.get_json(silent=True) or {}
        prompt = Prompt(
            system=str(body.get("systemPrompt", "")),
            user=str(body.get("userPrompt", "")),
        )
        if not prompt.user:
            return jsonify({"error": "userPrompt is required", "status": 400}), 400
        try:
            content = runner.run(chat_client.complete(prompt))
        except ProviderError as exc:
            logger.warning("Chat relay failed: %s", exc)
            return _provider_error_response(exc)
        return jsonify({"content": content})

    @app.route("/api/generate", methods=["POST"])
    def relay_generate():
        """Forward a single prompt to the prompt-completion provider."""
        if not settings.anthropic_api_key:
            logger.error("ANTHROPIC_API_KEY is not set")
            return jsonify({"error": "API key is not configured", "status": 500}), 500
        body = request.get_json(silent=True) or {}
        prompt = str(body.get("prompt", ""))
        if not prompt.strip():
            return jsonify({"error": "prompt is required", "status": 400}), 400
        try:
            content = runner.run(prompt_client.complete(prompt))
        except ProviderError as exc:
            logger.warning("Generate relay failed: %s", exc)
            return _provider_error_response(exc)
        return jsonify({"content": content})

    # ── Sessions ───────────────────────────────────────────────────────────

    @app.route("/api/session", methods=["POST"])
    def start_session():
        """Start generating every section for the submitted topic."""
        body = request.get_json(silent=True) or {}
        topic = str(body.get("topic", "")).strip()
        if not topic:
            return jsonify({"error": "topic is required"}), 400
        session_id = runner.run(orchestrator.begin(topic))
        return jsonify({"session_id": session_id, "topic": topic}), 202

    @app.route("/api/session")
    def get_session():
        """Return the current session snapshot."""
        return jsonify(orchestrator.state.snapshot())

    @app.route("/api/session/sections/<name>/retry", methods=["POST"])
    def retry_section(name: str):
        """Re-run one section without touching the others."""
        try:
            section = SectionName(name)
        except ValueError:
            return jsonify({"error": f"Unknown section {name!r}"}), 404
        try:
            runner.run(orchestrator.begin_retry(section))
        except LookupError as exc:
            return jsonify({"error": str(exc)}), 409
        except SectionBusyError as exc:
            return jsonify({"error": str(exc)}), 409
        return jsonify({"section": section.value, "status": "loading"}), 202

    @app.route("/api/session/stream")
    def stream_session():
        """SSE endpoint that streams state changes of the active session.

        SSE events emitted:
          {"type": "snapshot", "data": {...}}                    current state, first
          {"type": "section",  "section": "...", "data": {...}}  one section changed
          {"type": "progress", "data": {"completed": n, "total": 5}}
          {"type": "settled",  "data": {...}}                    final snapshot
        """
        state = orchestrator.state
        updates: queue.Queue[StateChange] = queue.Queue()
        unsubscribe = state.subscribe(updates.put)
        snapshot = state.snapshot()
        session_id = snapshot["session_id"]

        def generate():
            try:
                yield f"data: {json.dumps({'type': 'snapshot', 'data': snapshot})}\n\n"
                while snapshot["is_generating"]:
                    try:
                        change = updates.get(timeout=STREAM_KEEPALIVE)
                    except queue.Empty:
                        yield ": keep-alive\n\n"
                        continue
                    if change.session_id != session_id:
                        # A newer session replaced this one.
                        break
                    event = _stream_event(change)
                    if event is not None:
                        yield f"data: {json.dumps(event)}\n\n"
                    if change.kind == "session_settled":
                        break
                yield "data: [DONE]\n\n"
            finally:
                unsubscribe()

        return Response(
            stream_with_context(generate()),
            mimetype="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    return app


# ── Entry point ────────────────────────────────────────────────────────────

if __name__ == "__main__":
    settings = Settings()
    settings.validate()
    create_app(settings).run(debug=settings.debug, host="0.0.0.0", port=settings.port)
