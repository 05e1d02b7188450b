import httpx


async def post_multipart(
    url: str,
    data: dict[str, str],
    files: dict[str, tuple[str, bytes, str]],
    headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.Response:
    async with httpx.AsyncClient(timeout=120.0, transport=transport) as client:
        return await client.post(url, data=data, files=files, headers=headers)
