"""Prompt used for image analysis."""

ANALYSIS_PROMPT = """Please analyze this image and provide:
1) A detailed description of what you see
2) Any text that appears in the image.

Format your response as JSON with "description" and "extractedText" fields.
Respond with the JSON object only."""

# Replies starting like this are refusals, not malformed JSON
REFUSAL_PREFIXES = ("I apologize", "I'm sorry", "I am sorry")
