from typing import Dict, Any, Optional

from chutes_nodes.exec_http import decode_response, send

from chutes_nodes.plugins.chutes.common import chute_url, require_api_key


def build_speech_body(params: Dict[str, Any]) -> Dict[str, Any]:
    body: Dict[str, Any] = {"text": params["text"]}
    voice = params.get("voice") or ""
    if voice == "custom":
        voice = params.get("custom_voice") or ""
    # separator entries are dropdown group headers, not voices
    if voice and not voice.startswith("_separator_"):
        body["voice"] = voice
    speed = (params.get("options") or {}).get("speed")
    if speed is not None:
        body["speed"] = speed
    return body


async def run(params: Dict[str, Any], inputs: Dict[str, Any], creds: Optional[Dict[str, Any]], ctx):
    api_key = require_api_key(creds)
    base_url = chute_url(params, creds, "textToSpeech")
    r = await send("POST", "/speak", build_speech_body(params), base_url, api_key, ctx.http)
    return {"response": decode_response(r)}
