from unittest.mock import AsyncMock, MagicMock


class AsyncContextManager:
    """
    Helper for mocking
    """

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


def async_context_manager_mock():
    return MagicMock(AsyncContextManager)


def mock_aiohttp_session(client_session_patch: MagicMock, method: str) -> MagicMock:
    """
    Wire a patched `aiohttp.ClientSession` so that `async with ClientSession() as session`
    and `async with session.<method>(...) as response` work. Returns the response mock.
    """
    session = AsyncMock()
    client_session_patch.return_value = session
    session.__aenter__.return_value = session
    setattr(session, method, async_context_manager_mock())
    response = getattr(session, method).return_value.__aenter__.return_value
    response.raise_for_status = MagicMock()
    return response
