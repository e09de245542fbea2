from agent.tools.web_search import TOOL_NAME, build_web_search_tool, search_web

__all__ = ["TOOL_NAME", "build_web_search_tool", "search_web"]
