"""
How a browser client attaches to an avatar's media stream.

Exactly one transport is selected per deployment (AVATAR_TRANSPORT):

- direct_media: the client joins the vendor's LiveKit room itself using the
  realtime parameters returned with the session
- iframe:       the client embeds GET /avatar/iframe/{avatar_id}, a page that
  creates its own session and plays the stream
- vendor_sdk:   the client runs the vendor's SDK with a token minted by
  POST /v1/streaming.create_token
"""

from __future__ import annotations

import html
import json
from abc import ABC, abstractmethod
from string import Template
from typing import Any

from avatar.session import AvatarSession
from errors import ConfigurationError


class AvatarTransport(ABC):
    name: str

    @abstractmethod
    def describe(self, session: AvatarSession) -> dict[str, Any]:
        """Client-facing attachment info for a created session."""
        raise NotImplementedError


class DirectMediaTransport(AvatarTransport):
    name = "direct_media"

    def describe(self, session: AvatarSession) -> dict[str, Any]:
        return {"type": self.name, **session.realtime.to_dict()}


class VendorSdkTransport(AvatarTransport):
    name = "vendor_sdk"

    def __init__(self, *, token_path: str = "/v1/streaming.create_token") -> None:
        self._token_path = token_path

    def describe(self, session: AvatarSession) -> dict[str, Any]:
        return {
            "type": self.name,
            "avatarId": session.avatar_id,
            "tokenEndpoint": self._token_path,
        }


_IFRAME_PAGE = Template("""<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Avatar - $title</title>
  <style>
    body { margin: 0; background: #000; display: flex; justify-content: center; align-items: center; }
    #avatarVideo { width: 100%; height: 100%; object-fit: cover; background: #000; }
    #status { position: absolute; top: 10px; right: 10px; background: rgba(0,0,0,0.7);
              color: #fff; padding: 5px 10px; border-radius: 5px; font: 12px sans-serif; }
  </style>
</head>
<body>
  <video id="avatarVideo" autoplay playsinline></video>
  <div id="status">Connecting...</div>
  <script src="https://cdn.jsdelivr.net/npm/livekit-client@2/dist/livekit-client.umd.min.js"></script>
  <script>
    const AVATAR_ID = $avatar_id;
    const VOICE_ID = $voice_id;
    const statusEl = document.getElementById("status");
    const videoEl = document.getElementById("avatarVideo");
    let sessionId = null;

    async function start() {
      const res = await fetch("/session", {
        method: "POST",
        headers: {"Content-Type": "application/json"},
        body: JSON.stringify({avatarId: AVATAR_ID, voiceId: VOICE_ID}),
      });
      const body = await res.json();
      if (!body.success) { statusEl.textContent = body.error; return; }
      sessionId = body.sessionId;
      const room = new LivekitClient.Room();
      room.on(LivekitClient.RoomEvent.TrackSubscribed, (track) => track.attach(videoEl));
      await room.connect(body.livekitUrl, body.livekitToken);
      statusEl.textContent = "Ready";
      window.parent.postMessage({type: "avatar-ready", avatarId: AVATAR_ID, sessionId}, "*");
    }

    window.addEventListener("message", async (ev) => {
      if (!sessionId || !ev.data || ev.data.type !== "speak") return;
      await fetch("/session/" + sessionId + "/speak", {
        method: "POST",
        headers: {"Content-Type": "application/json"},
        body: JSON.stringify({text: ev.data.text}),
      });
    });

    window.addEventListener("beforeunload", () => {
      if (sessionId) navigator.sendBeacon("/session/" + sessionId + "/stop");
    });

    start().catch((e) => { statusEl.textContent = String(e); });
  </script>
</body>
</html>
""")


class IframeTransport(AvatarTransport):
    name = "iframe"

    def __init__(self, *, base_path: str = "/avatar/iframe") -> None:
        self._base_path = base_path.rstrip("/")

    def describe(self, session: AvatarSession) -> dict[str, Any]:
        return {
            "type": self.name,
            "iframeUrl": f"{self._base_path}/{session.avatar_id}",
        }

    def render_html(self, *, avatar_id: str, name: str, voice_id: str | None) -> str:
        # json.dumps output is embedded in <script>; "</" must not close the tag.
        def js(value: str | None) -> str:
            return json.dumps(value).replace("</", "<\\/")

        return _IFRAME_PAGE.substitute(
            title=html.escape(name),
            avatar_id=js(avatar_id),
            voice_id=js(voice_id),
        )


_TRANSPORTS: dict[str, type[AvatarTransport]] = {
    DirectMediaTransport.name: DirectMediaTransport,
    IframeTransport.name: IframeTransport,
    VendorSdkTransport.name: VendorSdkTransport,
}


def build_transport(name: str) -> AvatarTransport:
    """
    Raises:
        ConfigurationError for an unknown transport name.
    """
    cls = _TRANSPORTS.get(name)
    if cls is None:
        raise ConfigurationError(
            f"Unknown avatar transport {name!r} (expected one of: {', '.join(sorted(_TRANSPORTS))})"
        )
    return cls()
