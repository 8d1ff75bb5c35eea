"""
Client worker program

Uploaded verbatim into each customer's account. The worker looks up the
request path in its ``VARIANTS`` KV binding, serves hits with
``x-served-by: AXP`` and reports every agent request to
``{API_ENDPOINT}/v1/analytics/log`` without blocking the response.

KV keys are percent-decoded URL paths ("/café"). Variant authoring
normalizes paths to that form and the worker decodes ``url.pathname``
before the lookup.
"""

import re

WORKER_MAIN_MODULE = "worker.js"
KV_BINDING_NAME = "VARIANTS"

# Worker secret names
SECRET_CLIENT_API_KEY = "CLIENT_API_KEY"
SECRET_SITE_ID = "SITE_ID"
SECRET_API_ENDPOINT = "API_ENDPOINT"

# Marker header the health probe looks for
SERVED_BY_HEADER = "x-served-by"
SERVED_BY_VALUE = "AXP"

CLIENT_WORKER_SCRIPT = r"""// AI-Optimized Variant Worker
// Deployed by AXP Edge Delivery

const AI_AGENT_PATTERNS = [
  'GPTBot',
  'ChatGPT-User',
  'Claude-Web',
  'ClaudeBot',
  'anthropic-ai',
  'Google-Extended',
  'GoogleOther',
  'PerplexityBot',
  'Perplexity',
  'Applebot-Extended',
  'YouBot',
  'Bytespider',
  'cohere-ai',
  'Meta-ExternalAgent',
  'OAI-SearchBot',
];

function matchAgent(userAgent) {
  if (!userAgent) return null;
  const ua = userAgent.toLowerCase();
  return AI_AGENT_PATTERNS.find(p => ua.includes(p.toLowerCase())) || null;
}

async function logAnalytics(env, data) {
  try {
    await fetch(`${env.API_ENDPOINT}/v1/analytics/log`, {
      method: 'POST',
      headers: {
        'Authorization': `Bearer ${env.CLIENT_API_KEY}`,
        'Content-Type': 'application/json',
        'X-SITE-ID': env.SITE_ID,
      },
      body: JSON.stringify(data),
    });
  } catch (error) {
    console.error('Analytics logging failed:', error);
  }
}

// Keys are stored decoded ("/café"); pathname arrives percent-encoded
function variantKey(pathname) {
  try {
    return decodeURIComponent(pathname);
  } catch (error) {
    return pathname;
  }
}

export default {
  async fetch(request, env, ctx) {
    const url = new URL(request.url);
    const path = variantKey(url.pathname);
    const userAgent = request.headers.get('user-agent') || '';
    const botType = matchAgent(userAgent);

    if (botType) {
      const variant = await env.VARIANTS.get(path);
      ctx.waitUntil(logAnalytics(env, {
        path,
        userAgent,
        botType,
        variantServed: Boolean(variant),
        timestamp: new Date().toISOString(),
      }));

      if (variant) {
        return new Response(variant, {
          headers: {
            'content-type': 'text/html;charset=UTF-8',
            'cache-control': 'public, max-age=3600',
            'x-served-by': 'AXP',
            'x-bot-type': botType,
          },
        });
      }
    }

    return fetch(request);
  },
};
"""


# Worker script names are lower-case, at most 63 chars including the "axp-" prefix
SITE_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]{0,58}$")


def is_valid_site_id(site_id: str) -> bool:
    return isinstance(site_id, str) and bool(SITE_ID_PATTERN.match(site_id))


def get_client_worker_code() -> str:
    return CLIENT_WORKER_SCRIPT


def worker_name_for(site_id: str) -> str:
    return f"axp-{site_id}"


def kv_namespace_title_for(site_id: str) -> str:
    return f"axp-variants-{site_id}"


def route_pattern_for(domain_name: str) -> str:
    return f"{domain_name}/*"
