"""
Intelli Maker core package.

Modules
───────
markup        — <keyword> emphasis parsing (Markup, Segment)
sanitizer     — clean raw provider text and parse it as JSON
models        — Pydantic record models (Phrase, Trivia, GlossaryItem, KeyPerson, Remark)
errors        — GenerationError taxonomy (provider, parse, validation)
providers     — chat-completion (httpx) and single-prompt (Anthropic) clients
prompts       — Japanese prompt builders for every section
generators    — one generator per section: prompt → provider → records → state
state         — per-section lifecycle, session tokens and progress counter
orchestrator  — concurrent first stage, synthesis, retries, session replacement
diagnostics   — structured failure events delivered to pluggable sinks
runner        — background asyncio loop for synchronous (Flask) callers
"""
