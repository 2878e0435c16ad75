"""Tool catalogue and registry for LLM agent runtimes."""
