"""storechat — a conversational assistant for small stores run from a spreadsheet.

Architecture Overview
=====================

A store's services, products, hours and leads live in spreadsheet tabs.
Each chat request is answered by one of two pipelines that share the same
tool registry, cache and trace format:

1. **Classic** (``orchestrator.py``) — a LangGraph StateGraph:
   classify → dispatch → respond.  One cheap JSON-mode call picks a tool;
   whitelisted tools reply with a fixed template, everything else goes
   through the responder model.  ``lean`` mode skips the store summary in
   the classifier prompt.

2. **Native** (``native.py``) — the model calls tools itself through
   OpenAI-format function specs, for up to ``NATIVE_MAX_ITERATIONS`` rounds.

Key Design Decisions
--------------------
- **Closed tool set**: ``ToolName`` enum with an explicit ``UNKNOWN``;
  arguments are pydantic models that also generate the function specs.
- **One result shape**: every handler output goes through
  ``FunctionResult.from_raw`` before templates, slimming or the loop see it.
- **Caching**: ``CACHE_STRATEGY`` picks the database, memory or
  caller-supplied backend at startup; TTL expiry happens at read time.
- **Resilience**: HTTP clients retry timeouts and 5xx with exponential
  backoff; completion calls are never retried.
- **Observability**: every external call reports to the CloudWatch metrics
  buffer; every request returns a debug trace with timings, tokens and cost.
- **Dual Interface**: FastAPI server (production) + CLI chat loop (development).

Package Structure
-----------------
- ``storechat/orchestrator.py`` — classic StateGraph + direct function runs
- ``storechat/native.py`` — native tool-calling loop
- ``storechat/classifier.py`` / ``responder.py`` / ``templates.py`` — reply pipeline
- ``storechat/prompts.py`` — prompt templates
- ``storechat/slim.py`` — payload reduction before model calls
- ``storechat/trace.py`` / ``pricing.py`` — debug trace and cost model
- ``storechat/evaluator.py`` — background QA scoring
- ``storechat/services/`` — HTTP clients, cache, tab loader, metrics
- ``storechat/tools/`` — tool handlers, validators, semantic matcher
- ``storechat/api/`` — FastAPI routes and Pydantic schemas
"""
