"""
Web Search Tool
===============

Live web search through the Tavily API, for questions that need fresher
information than the model was trained on.

Returns Tavily's short answer (when it has one) plus the sources with
trimmed snippets, so the model can ground and cite its reply.
"""

from datetime import date

import httpx
from pydantic import BaseModel, Field

from galt.tools import Tool
from galt.utils.logger import Logger

logger = Logger("WebSearch")

TAVILY_SEARCH_URL = "https://api.tavily.com/search"
SEARCH_TIMEOUT = httpx.Timeout(20.0, connect=5.0)


class WebSearchArgs(BaseModel):
    query: str = Field(min_length=1, description="The web search query for fresh information")
    count: int = Field(default=5, ge=1, le=10, description="Number of search results to fetch (default: 5)")
    deep: bool = Field(default=False, description="If true, performs a deeper, more comprehensive search")
    append_date: bool = Field(default=False, description="If true, appends today's date to the query for freshness")
    max_snippet_length: int = Field(default=300, ge=1, description="Maximum characters per snippet")


def create_web_search_tool(api_key: str, transport: httpx.AsyncBaseTransport | None = None) -> Tool:
    """
    Build the web_search tool.

    Args:
        api_key: Tavily API key
        transport: httpx transport override (tests use httpx.MockTransport)
    """

    async def web_search(args: WebSearchArgs) -> dict:
        query = args.query
        if args.append_date:
            query += f" ({date.today().isoformat()})"

        depth = "advanced" if args.deep else "basic"
        logger.info(f"Searching the web: {query[:50]}...", {"depth": depth})

        async with httpx.AsyncClient(timeout=SEARCH_TIMEOUT, transport=transport) as client:
            response = await client.post(
                TAVILY_SEARCH_URL,
                headers={"Authorization": f"Bearer {api_key}"},
                json={
                    "query": query,
                    "max_results": args.count,
                    "search_depth": depth,
                    "include_answer": True,
                },
            )

        if response.status_code != 200:
            raise RuntimeError(f"Tavily API error: {response.status_code} {response.reason_phrase}")

        data = response.json()
        sources = [
            {
                "title": item.get("title", ""),
                "url": item.get("url", ""),
                "snippet": (item.get("content") or "")[: args.max_snippet_length],
            }
            for item in data.get("results") or []
        ]

        if not sources:
            return {
                "summary": "No reliable sources were found for this query. Try rephrasing it.",
                "sources": [],
                "meta": {"total_sources": 0, "search_depth": depth, "query_used": query, "reliable": False},
            }

        return {
            "summary": data.get("answer") or "",
            "sources": sources,
            "meta": {"total_sources": len(sources), "search_depth": depth, "query_used": query, "reliable": True},
        }

    return Tool(
        name="web_search",
        description="Performs a live web search and returns a short answer with its sources.",
        args_model=WebSearchArgs,
        execute=web_search,
    )
