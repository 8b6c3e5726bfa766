# cyber_hub/content_adapter.py

import logging
from typing import Any, List, Optional

from pydantic import ValidationError

from cyber_hub import hub_config
from cyber_hub.base_utils import BaseUtils, ReplyParseError
from cyber_hub.hub_prompts import AUDIT_PROMPT, MANIFEST_PROMPT, SYNTHESIS_PROMPT, THREAT_FEED_PROMPT
from cyber_hub.llm_client import ImageLlmClient, LlmClient, is_openai_model
from cyber_hub.models import (
    CyberThreat,
    Err,
    Ok,
    Result,
    SecurityAudit,
    SynthesisReply,
    ThreatFeedReply,
)

logger = logging.getLogger("cyber_hub")


class ContentAdapter(BaseUtils):
    """
    Boundary to the generative service.

    Every call is one request/response exchange and returns Ok(record) or
    Err(reason). Replies are parsed and schema-checked here so nothing
    unvalidated reaches HubState.

    Clients are injected; any of them may be None when it could not be built,
    in which case the matching call returns Err without touching the network.
    """

    def __init__(
        self,
        *,
        audit_llm: Any = None,
        synthesis_llm: Any = None,
        image_llm: Any = None,
        threat_llm: Any = None,
        retries: int = 1,
        threat_count: int = 5,
    ):
        self.audit_llm = audit_llm
        self.synthesis_llm = synthesis_llm
        self.image_llm = image_llm
        self.threat_llm = threat_llm if threat_llm is not None else audit_llm
        self.retries = retries
        self.threat_count = threat_count

    def _fail(self, action: str, reason: str) -> Err:
        self.color_print(f"{action} failed: {reason}", color="red", level=logging.ERROR)
        return Err(reason)

    def _ask_json(self, action: str, llm: Any, prompt: str):
        if llm is None:
            raise RuntimeError(f"no model client configured for {action}")
        raw = llm.invoke(prompt, retries=self.retries)
        logger.debug(f"{action} raw reply:\n{raw}")
        return self.load_fault_tolerant_json(raw)

    def perform_security_audit(self, subject: str) -> Result[SecurityAudit]:
        if not subject or not subject.strip():
            return Err("audit subject is empty")
        prompt = self.unsafe_string_format(AUDIT_PROMPT, subject=subject)
        try:
            data = self._ask_json("security audit", self.audit_llm, prompt)
            audit = SecurityAudit.model_validate(data)
        except (ReplyParseError, ValidationError) as e:
            return self._fail("Security audit", f"malformed audit reply: {e}")
        except Exception as e:
            return self._fail("Security audit", f"{type(e).__name__}: {e}")
        logger.info(f"Security audit complete: risk={audit.riskLevel}, {len(audit.vulnerabilities)} findings")
        return Ok(audit)

    def synthesize_intelligence(self, prompt: str, report_format: str) -> Result[SynthesisReply]:
        if not prompt or not prompt.strip():
            return Err("synthesis prompt is empty")
        full_prompt = self.unsafe_string_format(SYNTHESIS_PROMPT, prompt=prompt, format=report_format)
        try:
            data = self._ask_json("synthesis", self.synthesis_llm, full_prompt)
            if not isinstance(data, dict):
                raise ReplyParseError(f"expected a JSON object, got {type(data).__name__}")
            reply = SynthesisReply.model_validate(data)
        except (ReplyParseError, ValidationError) as e:
            return self._fail("Synthesis", f"malformed synthesis reply: {e}")
        except Exception as e:
            return self._fail("Synthesis", f"{type(e).__name__}: {e}")
        return Ok(reply)

    def generate_invention_visual(self, prompt: str) -> Result[str]:
        if not prompt or not prompt.strip():
            return Err("manifestation prompt is empty")
        if self.image_llm is None:
            return self._fail("Manifestation", "no model client configured for manifestation")
        full_prompt = self.unsafe_string_format(MANIFEST_PROMPT, prompt=prompt).strip()
        try:
            image_ref = self.image_llm.generate(full_prompt, retries=self.retries)
        except Exception as e:
            return self._fail("Manifestation", f"{type(e).__name__}: {e}")
        if not isinstance(image_ref, str) or not image_ref:
            return self._fail("Manifestation", "image reply carried no image reference")
        return Ok(image_ref)

    def fetch_latest_threats(self) -> Result[List[CyberThreat]]:
        prompt = self.unsafe_string_format(THREAT_FEED_PROMPT, count=self.threat_count)
        try:
            data = self._ask_json("threat feed", self.threat_llm, prompt)
            if isinstance(data, list):
                data = {"threats": data}
            feed = ThreatFeedReply.model_validate(data)
        except (ReplyParseError, ValidationError) as e:
            return self._fail("Threat feed", f"malformed threat feed reply: {e}")
        except Exception as e:
            return self._fail("Threat feed", f"{type(e).__name__}: {e}")
        return Ok(feed.threats)


def _build_client(factory, model_name: str, credentials: Any) -> Optional[Any]:
    try:
        return factory(
            model_name=model_name,
            vertex_project=hub_config.PROJECT_ID,
            vertex_region=hub_config.REGION,
            timeout=hub_config.LLM_TIMEOUT,
            credentials=credentials,
        )
    except Exception as e:
        logger.warning(f"Could not initialize model client '{model_name}': {e}")
        return None


def build_content_adapter() -> ContentAdapter:
    """
    Adapter wired from environment configuration. Google credentials are only
    resolved when at least one model routes to Vertex.
    """
    models = (hub_config.AUDIT_MODEL, hub_config.SYNTHESIS_MODEL, hub_config.THREAT_MODEL, hub_config.IMAGE_MODEL)
    credentials = None
    if any(not is_openai_model(m) for m in models):
        try:
            credentials = hub_config.build_creds()
        except Exception as e:
            logger.warning(f"Could not resolve Google credentials, Vertex calls will fail: {e}")

    audit_llm = _build_client(LlmClient, hub_config.AUDIT_MODEL, credentials)
    synthesis_llm = _build_client(LlmClient, hub_config.SYNTHESIS_MODEL, credentials)
    if hub_config.THREAT_MODEL == hub_config.AUDIT_MODEL:
        threat_llm = audit_llm
    else:
        threat_llm = _build_client(LlmClient, hub_config.THREAT_MODEL, credentials)
    image_llm = _build_client(ImageLlmClient, hub_config.IMAGE_MODEL, credentials)

    return ContentAdapter(
        audit_llm=audit_llm,
        synthesis_llm=synthesis_llm,
        image_llm=image_llm,
        threat_llm=threat_llm,
        retries=hub_config.LLM_RETRIES,
    )
