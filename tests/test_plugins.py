import asyncio
import json

import httpx
import pytest

from chutes_nodes.errors import ExecutionError
from chutes_nodes.plugins.chutes import (
    chat_model,
    content_moderation,
    embeddings,
    image_generation,
    inference,
    list_chutes,
    music_generation,
    speech_to_text,
    text_generation,
    text_to_speech,
    video_generation,
)
from chutes_nodes.plugins.chutes.common import parse_size, require_api_key, to_base64
from chutes_nodes.runtime import Context
from conftest import openapi_doc

CREDS = {"api_key": "cpk_test"}


def test_build_chat_body_for_completion():
    body = text_generation.build_chat_body(
        "complete",
        {"prompt": "hi", "options": {"temperature": 0.2, "topP": 0.9, "stopSequences": "END, STOP", "responseFormat": "json_object"}},
    )

    assert body == {
        "temperature": 0.2,
        "top_p": 0.9,
        "max_tokens": 1000,
        "stream": False,
        "stop": ["END", "STOP"],
        "response_format": {"type": "json_object"},
        "messages": [{"role": "user", "content": "hi"}],
    }


def test_build_chat_body_rejects_unknown_operation():
    with pytest.raises(ExecutionError, match="not supported for text generation"):
        text_generation.build_chat_body("summarize", {"prompt": "hi"})


def test_to_base64_accepts_bytes_data_urls_and_base64():
    assert to_base64(b"hi") == "aGk="
    assert to_base64("data:image/png;base64,aGk=") == "aGk="
    assert to_base64("aGk=") == "aGk="


@pytest.mark.parametrize("value", [None, "", "https://example.com/cat.png", "data:image/png,raw"])
def test_to_base64_rejects_unusable_values(value):
    with pytest.raises(ExecutionError):
        to_base64(value)


def test_parse_size_and_api_key():
    assert parse_size("1024x768") == (1024, 768)
    assert parse_size(None) == (None, None)
    with pytest.raises(ExecutionError):
        parse_size("large")
    with pytest.raises(ExecutionError, match="CHUTES_API_KEY"):
        require_api_key({})


def test_speech_body_voice_handling():
    assert text_to_speech.build_speech_body({"text": "hi", "voice": "af_heart", "options": {"speed": 1.2}}) == {
        "text": "hi", "voice": "af_heart", "speed": 1.2,
    }
    assert text_to_speech.build_speech_body({"text": "hi", "voice": "custom", "custom_voice": "bm_lewis"})["voice"] == "bm_lewis"
    assert "voice" not in text_to_speech.build_speech_body({"text": "hi", "voice": "_separator_american"})


def test_summarize_chunks():
    chunks = [{"start": 0, "end": 1.5, "text": " Hello"}, {"start": 1.5, "end": 3.25, "text": " world."}]

    assert speech_to_text.summarize_chunks(chunks) == {"text": "Hello world.", "duration": 3.25, "chunk_count": 2}
    assert speech_to_text.summarize_chunks([], include_chunks=True) == {"text": "", "duration": 0, "chunk_count": 0, "chunks": []}


def test_moderation_request_routing():
    assert content_moderation.moderation_request("https://chutes-hate-speech-detector.chutes.ai", "bad words", None) == (
        "/predict", {"texts": ["bad words"]},
    )
    assert content_moderation.moderation_request("https://chutes-nsfw.chutes.ai", "", b"hi") == ("/image", {"image_b64": "aGk="})
    assert content_moderation.moderation_request("https://chutes-nsfw.chutes.ai", "text", None) == ("/text", {"text": "text"})
    with pytest.raises(ExecutionError):
        content_moderation.moderation_request("https://chutes-hate-speech-detector.chutes.ai", "", b"hi")
    with pytest.raises(ExecutionError):
        content_moderation.moderation_request("https://chutes-nsfw.chutes.ai", "", None)


def test_video_fields_derive_frames():
    fields = video_generation.video_fields({"prompt": "x", "options": {"duration": 3, "fps": 16, "resolution": "832*480"}})

    assert fields == {"prompt": "x", "resolution": "832*480", "frames": 48, "fps": 16}
    assert video_generation.video_fields({"prompt": "x"})["frames"] == 120


def test_video_generation_on_ltx_without_schema(chute_client, recorder):
    params = {"prompt": "a cat", "chute_url": "https://chutes-ltx-video.chutes.ai"}

    async def go():
        async with chute_client(None) as http:
            return await video_generation.run(params, {}, CREDS, Context(http=http))

    out = asyncio.run(go())

    assert out["endpoint"] == "/generate"
    body = json.loads(recorder.posts()[0].content)
    assert body == {"prompt": "a cat", "num_frames": 121, "frame_rate": 24}


def test_image_to_video_sends_one_scalar_image(chute_client, recorder):
    schema = openapi_doc({"/image2video": {"prompt": {"type": "string"}, "image_b64": {"type": "string"}}})
    params = {"operation": "image2video", "prompt": "waves", "image": b"hi", "chute_url": "https://chutes-wan.chutes.ai"}

    async def go():
        async with chute_client(schema) as http:
            return await video_generation.run(params, {}, CREDS, Context(http=http))

    out = asyncio.run(go())

    assert out["endpoint"] == "/image2video"
    assert json.loads(recorder.posts()[0].content)["image_b64"] == "aGk="


def test_image_generation_runs_once_per_image_with_consecutive_seeds(chute_client, recorder):
    params = {"prompt": "a fox", "size": "1024x768", "n": 2, "options": {"seed": 7, "negative_prompt": "blur"}}

    def reply(request):
        return httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"})

    async def go():
        async with chute_client(None, reply) as http:
            return await image_generation.run(params, {}, CREDS, Context(http=http))

    out = asyncio.run(go())

    assert len(out["images"]) == 2
    assert out["images"][0]["binary"]["mime_type"] == "image/png"
    bodies = [json.loads(r.content) for r in recorder.posts()]
    assert [b["seed"] for b in bodies] == [7, 8]
    assert bodies[0] == {"prompt": "a fox", "width": 1024, "height": 768, "negative_prompt": "blur", "seed": 7}
    assert all(r.url.path == "/generate" for r in recorder.posts())


def test_image_edit_wraps_single_image(chute_client, recorder):
    params = {"operation": "edit", "prompt": "make it blue", "image": "data:image/png;base64,aGk=", "chute_url": "https://chutes-qwen-image-edit.chutes.ai"}

    async def go():
        async with chute_client(None) as http:
            return await image_generation.run(params, {}, CREDS, Context(http=http))

    out = asyncio.run(go())

    assert out == {"response": {"ok": True}}
    post = recorder.posts()[0]
    assert post.url.path == "/edit"
    assert json.loads(post.content) == {"prompt": "make it blue", "image_b64s": ["aGk="]}


def test_classify_chute():
    assert list_chutes.classify_chute({"name": "deepseek-ai/DeepSeek-V3", "standard_template": "vllm"}) == "llm"
    assert list_chutes.classify_chute({"name": "meta-llama/Llama-Guard-4", "standard_template": "vllm"}) == "moderation"
    assert list_chutes.classify_chute({"name": "whisper-large-v3"}) == "stt"
    assert list_chutes.classify_chute({"name": "kokoro", "tagline": "text to speech"}) == "tts"
    assert list_chutes.classify_chute({"name": "Wan2.1-14B", "tagline": "video generation", "standard_template": "diffusion"}) == "video"
    assert list_chutes.classify_chute({"name": "FLUX.1-dev", "standard_template": "diffusion"}) == "image"
    assert list_chutes.classify_chute({"name": "mystery"}) is None


def test_list_chutes_filters_public_by_kind(chute_client, recorder):
    items = [
        {"name": "whisper-large-v3", "slug": "chutes-whisper", "public": True, "user": {"username": "chutes"}},
        {"name": "FLUX.1-dev", "slug": "chutes-flux", "public": True, "standard_template": "diffusion", "tagline": "Fast images"},
        {"name": "private-flux", "slug": "me-flux", "public": False, "standard_template": "diffusion"},
    ]

    def handler(request):
        recorder.requests.append(request)
        return httpx.Response(200, json={"items": items})

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            return await list_chutes.run({"kind": "image"}, {}, CREDS, Context(http=http))

    out = asyncio.run(go())

    assert out == {"chutes": [{
        "name": "FLUX.1-dev - Fast images",
        "url": "https://chutes-flux.chutes.ai",
        "kind": "image",
        "template": "diffusion",
        "owner": "unknown",
    }]}
    req = recorder.requests[0]
    assert req.url.host == "api.chutes.ai"
    assert req.url.path == "/chutes/"
    assert req.url.params["include_public"] == "true"
    assert req.url.params["limit"] == "500"


def test_chat_model_goes_through_openai_client(recorder):
    completion = {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1760000000,
        "model": "deepseek-ai/DeepSeek-V3",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": "hello"}, "finish_reason": "stop"}],
    }

    def handler(request):
        recorder.requests.append(request)
        return httpx.Response(200, json=completion)

    params = {"messages": [{"role": "user", "content": "hi"}], "chute_url": "https://chutes-deepseek.chutes.ai"}

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            return await chat_model.run(params, {}, CREDS, Context(http=http))

    out = asyncio.run(go())

    assert out["response"]["choices"][0]["message"]["content"] == "hello"
    req = recorder.requests[0]
    assert str(req.url) == "https://chutes-deepseek.chutes.ai/v1/chat/completions"
    assert req.headers["Authorization"] == "Bearer cpk_test"
    body = json.loads(req.content)
    assert body["model"] == ""
    assert body["temperature"] == 0.7


def test_embeddings_send_null_model(chute_client, recorder):
    async def go():
        async with chute_client(None) as http:
            return await embeddings.run({"text": ["a", "b"], "options": {"encoding_format": "float"}}, {}, CREDS, Context(http=http))

    asyncio.run(go())

    post = recorder.posts()[0]
    assert post.url.path == "/v1/embeddings"
    assert json.loads(post.content) == {"input": ["a", "b"], "model": None, "encoding_format": "float"}


def test_inference_operations(chute_client, recorder):
    async def go():
        async with chute_client(None) as http:
            ctx = Context(http=http)
            await inference.run({"model_id": "m1", "input": '{"x": 1}', "options": {"outputFormat": "json", "timeout": 9}}, {}, CREDS, ctx)
            await inference.run({"operation": "status", "job_id": "j1"}, {}, CREDS, ctx)

    asyncio.run(go())

    predict, status = recorder.requests
    assert predict.url.path == "/v1/inference/m1/predict"
    assert json.loads(predict.content) == {"input": {"x": 1}, "output_format": "json"}
    assert status.method == "GET"
    assert status.url.path == "/v1/inference/jobs/j1"


def test_inference_rejects_bad_json():
    async def go():
        return await inference.run({"model_id": "m1", "input": "{oops"}, {}, CREDS, Context(http=None))

    with pytest.raises(ExecutionError, match="not valid JSON"):
        asyncio.run(go())


def test_music_generation_without_schema_sends_diffrhythm_fields(chute_client, recorder):
    params = {
        "prompt": "lofi beats",
        "lyrics": "[00:01.00] hello",
        "chute_url": "https://chutes-diffrhythm.chutes.ai",
        "options": {"duration": 95, "steps": 32, "seed": 5, "reference_audio": b"hi"},
    }

    async def go():
        async with chute_client(None) as http:
            return await music_generation.run(params, {}, CREDS, Context(http=http))

    out = asyncio.run(go())

    assert out == {"response": {"ok": True}}
    post = recorder.posts()[0]
    assert post.url.path == "/generate"
    assert json.loads(post.content) == {
        "style_prompt": "lofi beats",
        "lyrics": "[00:01.00] hello",
        "music_duration": 95,
        "steps": 32,
        "seed": 5,
        "audio_b64": "aGk=",
        "chunked": False,
        "file_type": "wav",
    }
