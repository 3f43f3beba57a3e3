from __future__ import annotations

import json
import sys
from pathlib import Path

import anyio


def ensure_src_on_sys_path(repo_root: Path) -> None:
    """Allow running this script directly without installing the package."""
    src_str = str(repo_root / "src")
    if src_str not in sys.path:
        sys.path.insert(0, src_str)


def normalize_call_tool_result(result: object) -> object:
    """
    `FastMCP.call_tool()` may return:
    - a JSON-serializable dict,
    - a list of MCP ContentBlocks (commonly TextContent containing JSON text), or
    - a `(content, structured)` pair on newer SDKs.
    """
    if isinstance(result, tuple) and len(result) == 2 and isinstance(result[1], dict):
        return result[1]

    if isinstance(result, dict):
        return result

    if isinstance(result, list):
        texts = [item.text if isinstance(getattr(item, "text", None), str) else str(item) for item in result]
        if len(texts) == 1:
            try:
                return json.loads(texts[0])
            except json.JSONDecodeError:
                return {"content": texts[0]}
        return {"content": texts}

    return {"result": str(result)}


async def main() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    ensure_src_on_sys_path(repo_root)

    # PDF_TAKEOVER_* variables are expected to be configured by the run configuration.
    from pdf_takeover_mcp_server.server import mcp

    url = sys.argv[1] if len(sys.argv) > 1 else "https://arxiv.org/abs/1706.03762"

    # These call the MCP tool handlers directly (no MCP host required).
    for name, arguments in (
        ("evaluate_auto_takeover", {"url": url}),
        ("resolve_pdf_url", {"url": url}),
        ("get_redirect_rules", {}),
    ):
        result = await mcp.call_tool(name, arguments=arguments)
        print(f"# {name}")
        print(json.dumps(normalize_call_tool_result(result), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    # Run example:
    #   PYTHONPATH=src python examples/script_run_mcp_tools.py "https://arxiv.org/pdf/1706.03762"
    anyio.run(main)
