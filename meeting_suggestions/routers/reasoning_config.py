from __future__ import annotations

from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..config import ReasoningConfig
from ..state import State, get_state


class ReasoningConfigRequest(BaseModel):
    api_url: Optional[str] = Field(default=None, description="Chat-completions endpoint")
    api_key: Optional[str] = Field(default=None, description="Bearer credential; empty string clears it")
    model: Optional[str] = Field(default=None, description="Model id")
    timeout_s: Optional[float] = Field(default=None, gt=0)


router = APIRouter(tags=["reasoning-config"])


def _describe(cfg: ReasoningConfig) -> Dict[str, Any]:
    # Never echo the credential itself.
    return {
        "ok": True,
        "configured": cfg.configured,
        "api_url": cfg.api_url or None,
        "model": cfg.model if cfg.configured else None,
        "timeout_s": cfg.timeout_s,
        "api_key": bool(cfg.api_key),
    }


@router.get("/reasoning_config")
def v1_get_reasoning_config(state: State = Depends(get_state)) -> Dict[str, Any]:
    return _describe(state.extractor.config)


@router.post("/reasoning_config")
def v1_set_reasoning_config(payload: ReasoningConfigRequest, state: State = Depends(get_state)) -> Dict[str, Any]:
    s = state.settings
    current = state.extractor.config
    if not current.configured:
        # Start from the settings file values rather than the empty variant.
        current = ReasoningConfig(
            api_url=s.ai_api_url,
            api_key=s.ai_api_key,
            model=s.ai_model,
            timeout_s=s.ai_timeout_s,
            temperature=s.ai_temperature,
        )
    cfg = ReasoningConfig(
        api_url=(payload.api_url if payload.api_url is not None else current.api_url).strip(),
        api_key=(payload.api_key if payload.api_key is not None else current.api_key).strip(),
        model=(payload.model or current.model).strip(),
        timeout_s=payload.timeout_s if payload.timeout_s is not None else current.timeout_s,
        temperature=current.temperature,
    )
    state.set_reasoning_config(cfg)
    return _describe(state.extractor.config)
