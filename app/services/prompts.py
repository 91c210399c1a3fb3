"""
Prompt templates for every AI feature.

Templates are module-level constants so they can be tuned without touching
route logic.  Placeholders use ``str.format``; literal braces are doubled.
The ``{language}`` placeholder is filled from ``settings.TARGET_LANGUAGE``.
"""
from typing import Iterable, Optional

from app.config import settings

TRANSLATION_START_MARKER = ">>> PARAGRAPH TO TRANSLATE START <<<"
TRANSLATION_END_MARKER = ">>> PARAGRAPH TO TRANSLATE END <<<"


TRANSLATE_PROMPT = """\
You are an expert {language} translator. Translate the marked paragraph \
within the full context of the article.

**FULL ARTICLE CONTEXT:**
{context}

**REQUIREMENTS:**
- ONLY translate the paragraph between "{start_marker}" and "{end_marker}"
  (if there are no markers, translate the whole text)
- Do NOT translate the other paragraphs of the context
- Keep the original markdown formatting (bold, italics, code, etc.)
- Translate naturally and fluently, consistent with the surrounding context
- Restructure sentences where needed so they read naturally in {language}
- Use the whole article to get terminology, topic and tone right
- Return EXACTLY the markdown translation, nothing else

**IMPORTANT:** Return only the {language} translation of the marked paragraph, \
without the markers.\
"""

GRAMMAR_PROMPT = """\
Analyze the English grammar of the selected text: "{selected_text}".

Context of the text:
"{paragraph_content}"

Explain the grammar in {language} with:

📚 **Grammatical structure:**
- The main constituents (subject, predicate, complements...)
- Sentence type and structure
- Verb tense, aspect and mood (if any)

✨ **Detailed explanation:**
- Why is this structure used?
- Meaning and usage of the grammatical words
- The grammar rules that apply

🎯 **Similar examples:**
- Give 1-2 examples with a similar structure
- Compare with {language} where it helps

Answer in {language}, use emoji to keep it lively, with a light sense of humor \
while staying educational. Format nicely with markdown bullet points.\
"""

EXPLAIN_PROMPT = """\
Translate the selected text smoothly into {language} and explain it: "{selected_text}".
Context of the text:
"{paragraph_content}"
- Translate first, then explain.
- Translate fluently, restructuring sentences and wording where needed.
- Keep the explanation focused.
- Use smooth, natural phrasing.
- Add icons to keep it lively, and separate sections with different icons.
- Use bullet lists.
- Do NOT use horizontal rules "---" or any other horizontal separator.

Answer in {language}; markdown formatting is allowed.\
"""

CHAT_PROMPT = """\
You are a friendly, humorous and energetic AI assistant.
- Always answer in clear, concise {language}.
- You may use markdown, bullet lists and emoji (e.g. 😀😉🔥💡🚀) to keep answers lively.
- Never use a horizontal rule "---" as a separator.

Conversation:
{history}
Assistant:\
"""

ROOT_ANALYSIS_PROMPT = """\
Analyze the word root for: "{selected_text}"

Context: "{paragraph_content}"

Return a JSON response with this exact structure:
{{
  "viMeaning": "{language} meaning of the word",
  "prefixText": "exact prefix in word or null",
  "rootText": "exact root in word",
  "connection": "brief {language} explanation of prefix + root = meaning",
  "sameRoot": [
    {{
      "word": "related word 1",
      "viMeaning": "meaning in {language}",
      "prefixText": "prefix or null",
      "rootText": "root text",
      "connection": "connection explanation"
    }}
  ]
}}

Requirements:
- prefixText and rootText must appear exactly in the analyzed word
- sameRoot should contain exactly 5 words sharing the same ROOT (not prefix)
- All explanations in {language}
- If no prefix exists, use null for prefixText
- connection is short and follows this format: ad ("towards") + vi ("see") -> towards being seen = advice
- Return only valid JSON, no additional text\
"""

INLINE_ANNOTATION_PROMPT = """\
Annotate the following English text: "{text}". It may be a word, a phrase \
or an incomplete expression.
Output it in exactly this format: [{text}|{language} meaning]
Output only the format, nothing else.
Translate smoothly and in context, without rambling.
The text must be translated precisely according to the context.

Context containing the text to annotate:
{paragraph_content}\
"""

IMAGE_PROMPT_OPTIMIZER = """\
You are an expert at creating image generation prompts. Your task is to convert \
the given text into a detailed, visual prompt that will generate a cute \
cartoon-style illustration.

SELECTED TEXT: "{selected_text}"
FULL CONTEXT: "{full_context}"

INSTRUCTIONS:
1. Focus primarily on the SELECTED TEXT, but use the full context for additional understanding
2. Create a prompt for a cute cartoon-style illustration with adorable characters
3. The style should be:
   - Cute and friendly cartoon characters
   - Bright, cheerful colors
   - Simple, clean art style
   - Suitable for all ages
   - Expressive and engaging

4. Include specific visual elements that represent the key concepts from the selected text
5. Keep the prompt concise but descriptive (under 200 words)

Generate ONLY the image prompt, no additional explanation:\
"""

CARTOON_STYLE_SUFFIX = (
    "Style: Cute cartoon illustration, adorable characters, bright cheerful "
    "colors, simple clean art style, suitable for all ages, expressive and "
    "engaging, digital art, high quality"
)


def translate_prompt(paragraph_markdown: str, full_context: Optional[str] = None) -> str:
    return TRANSLATE_PROMPT.format(
        language=settings.TARGET_LANGUAGE,
        context=full_context or paragraph_markdown,
        start_marker=TRANSLATION_START_MARKER,
        end_marker=TRANSLATION_END_MARKER,
    )


def grammar_prompt(selected_text: str, paragraph_content: str) -> str:
    return GRAMMAR_PROMPT.format(
        language=settings.TARGET_LANGUAGE,
        selected_text=selected_text,
        paragraph_content=paragraph_content,
    )


def explain_prompt(selected_text: str, paragraph_content: str) -> str:
    return EXPLAIN_PROMPT.format(
        language=settings.TARGET_LANGUAGE,
        selected_text=selected_text,
        paragraph_content=paragraph_content,
    )


def chat_prompt(messages: Iterable) -> str:
    """Render the transcript; each message needs ``role`` and ``content``."""
    lines = []
    for message in messages:
        speaker = "User" if message.role == "user" else "Assistant"
        lines.append(f"{speaker}: {message.content}")
    return CHAT_PROMPT.format(
        language=settings.TARGET_LANGUAGE,
        history="\n".join(lines),
    )


def root_analysis_prompt(selected_text: str, paragraph_content: str) -> str:
    return ROOT_ANALYSIS_PROMPT.format(
        language=settings.TARGET_LANGUAGE,
        selected_text=selected_text,
        paragraph_content=paragraph_content,
    )


def inline_annotation_prompt(text: str, paragraph_content: str) -> str:
    return INLINE_ANNOTATION_PROMPT.format(
        language=settings.TARGET_LANGUAGE,
        text=text,
        paragraph_content=paragraph_content,
    )


def cartoon_prompt(optimized_prompt: str) -> str:
    return f"{optimized_prompt}\n\n{CARTOON_STYLE_SUFFIX}"
