import asyncio
import json

import httpx
import pytest

from leethub.services.channel import ChannelClosedError, HttpMessageChannel


def test_http_channel_posts_messages():
  received = []

  def handler(request):
    received.append((request.url.path, json.loads(request.content)))
    return httpx.Response(200, json={'enabled': False})

  channel = HttpMessageChannel('http://host.test', transport=httpx.MockTransport(handler))
  response = asyncio.run(channel.send({'action': 'CHECK_AUTO_PUSH'}))

  assert response == {'enabled': False}
  assert received == [('/api/messages', {'action': 'CHECK_AUTO_PUSH'})]


def test_http_channel_unreachable_host_is_channel_closed():
  def handler(request):
    raise httpx.ConnectError('refused', request=request)

  channel = HttpMessageChannel('http://host.test', transport=httpx.MockTransport(handler))
  with pytest.raises(ChannelClosedError):
    asyncio.run(channel.send({'action': 'GET_STATISTICS'}))


def test_http_channel_non_json_response_is_channel_closed():
  channel = HttpMessageChannel(
    'http://host.test',
    transport=httpx.MockTransport(lambda request: httpx.Response(502, text='Bad Gateway')),
  )
  with pytest.raises(ChannelClosedError):
    asyncio.run(channel.send({'action': 'GET_STATISTICS'}))
