AUDIT_PROMPT = """
You are a senior cybersecurity auditor reviewing a technology concept or code snippet.

Analyze the following technology for cybersecurity vulnerabilities:
```
{subject}
```

Identify potential risks, describe them, and suggest mitigations.
Provide scores for encryption strength and overall integrity (0-100).

Return ONLY a JSON object with this exact shape, no commentary, no markdown fences:
{
  "riskLevel": "Low" | "Medium" | "High" | "Critical",
  "encryptionStrength": <integer 0-100>,
  "integrityScore": <integer 0-100>,
  "vulnerabilities": [
    {"type": "<short name>", "description": "<what is exposed and how>", "mitigation": "<concrete countermeasure>"}
  ]
}
"""

SYNTHESIS_PROMPT = """
Write a high-quality cybersecurity intelligence report based on:
```
{prompt}
```

Format: {format}.
Include a catchy title, detailed content, a category label, and relevant tags.

Return ONLY a JSON object with this exact shape, no commentary, no markdown fences:
{
  "title": "<catchy title>",
  "content": "<the full report body>",
  "category": "<short category label>",
  "tags": ["<TAG>", "..."]
}
"""

THREAT_FEED_PROMPT = """
List the {count} most significant cybersecurity threats, vulnerabilities or active campaigns
reported recently. Prefer items with public advisories or reputable reporting.

For each item give a short title, a severity (Low, Medium, High or Critical), a two-sentence
summary, and the public sources you relied on (title + absolute URL).

Return ONLY a JSON object with this exact shape, no commentary, no markdown fences:
{
  "threats": [
    {
      "title": "<headline>",
      "severity": "Low" | "Medium" | "High" | "Critical",
      "summary": "<two sentences>",
      "sources": [{"title": "<source name>", "uri": "<https://...>"}]
    }
  ]
}
"""

MANIFEST_PROMPT = """
Concept art of a futuristic quantum-cyber invention, studio lighting, high detail,
dark background with cyan and purple neon accents. The invention: {prompt}
"""
