"""LLM prompt templates for the stations."""

# Common instruction to suppress thinking and ensure JSON-only output
# Note: curly braces must be escaped as {{ }} for LangChain templates
JSON_ONLY_INSTRUCTION = """
CRITICAL: You MUST respond with ONLY a valid JSON object.
- Do NOT include any thinking, reasoning, or explanation.
- Do NOT use markdown code blocks.
- Start your response directly with the opening brace
- No text before or after the JSON."""

SCRIPT_ANALYST_SYSTEM_PROMPT = """You are an experienced script consultant and dramaturg. You analyze screenplays, stage plays and story outlines with precision.

RULES:
1. Only report what is supported by the text
2. Preserve character names exactly as they appear
3. Prefer fewer, well-supported findings over many speculative ones
""" + JSON_ONLY_INSTRUCTION

EXTRACTION_USER_PROMPT = """Identify the characters, locations and significant objects in this text, and the relations between them.

TEXT:
---
{text}
---

ALREADY FOUND (do not repeat unless correcting the kind):
{known_entities}

Respond with ONLY this JSON structure (no other text):
{{
  "entities": [
    {{"name": "Name as it appears", "kind": "character|location|object"}}
  ],
  "relations": [
    {{"source": "Name", "target": "Name", "type": "conflict|alliance|association", "verb": "verb or cue"}}
  ]
}}"""

FRAMING_USER_PROMPT = """Classify the genre of this text and state its central thesis in one sentence.

TEXT:
---
{text}
---

CONTEXT:
- Main characters: {characters}
- Heuristic genre ranking: {genre_ranking}

Respond with ONLY this JSON structure (no other text):
{{
  "genre": "one genre label",
  "confidence": 0.0,
  "thesis": "One sentence statement of what the story is about",
  "themes": ["theme", "theme"]
}}"""

SYMBOLISM_USER_PROMPT = """List the recurring motifs and symbols in this text and what they suggest.

TEXT:
---
{text}
---

MOTIFS ALREADY FOUND: {motifs}

Respond with ONLY this JSON structure (no other text):
{{
  "motifs": [
    {{"motif": "word or image", "meaning": "what it suggests", "confidence": 0.0}}
  ]
}}"""

EXECUTIVE_SUMMARY_PROMPT = """Write a three sentence executive summary of this script analysis for the writer. Be constructive and specific. Do not overstate certainty.

ANALYSIS:
---
{report}
---

Respond with ONLY this JSON structure (no other text):
{{
  "summary": "Three sentences."
}}"""

COMPLIANCE_JUDGE_PROMPT = """Decide whether the content below satisfies this principle.

PRINCIPLE: {name}
DEFINITION: {description}

CONTENT:
---
{content}
---

Respond with ONLY this JSON structure (no other text):
{{
  "decision": "YES|NO",
  "confidence": 0.0,
  "reasoning": "One sentence."
}}"""
