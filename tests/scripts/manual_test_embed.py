#!/usr/bin/env python3
"""
Manual check for embedding endpoint connectivity.

Sends one short code line to the configured OpenAI-compatible endpoint
and prints the raw response, then repeats through the Embedder to show
the validated vector dimension.

Usage:
    cd tests/scripts
    python manual_test_embed.py ["text to embed"]
"""
import asyncio
import os
import sys

import httpx

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "..", "src"))

# Must load dotenv before importing settings
from dotenv import load_dotenv  # noqa: E402
load_dotenv()

from codeflow_context.config import settings  # noqa: E402
from codeflow_context.embeddings.embedder import Embedder, EmbeddingError  # noqa: E402


async def check_embed(text: str) -> None:
    api_key = settings.embedding_api_key_value()
    print(f"Model: {settings.embedding_model}")
    print(f"API Key: {api_key[:5] + '...' + api_key[-3:] if api_key else '(none)'}")

    payload = {
        "model": settings.embedding_model,
        "input": [text],
    }
    headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}

    url = str(settings.embedding_base_url)
    print(f"POST {url}")
    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(url, json=payload, headers=headers)
        print(f"Status: {resp.status_code}")
        print(f"Body: {resp.text[:500]}")

    try:
        vector = await Embedder().embed_one(text)
    except EmbeddingError as exc:
        print(f"Embedder rejected the response: {exc}")
        return
    print(f"Embedder OK: dimension={len(vector)}")


if __name__ == "__main__":
    asyncio.run(check_embed(sys.argv[1] if len(sys.argv) > 1 else "const user = getUser(1)"))
