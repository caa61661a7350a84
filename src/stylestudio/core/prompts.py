"""Instruction templates sent to the external generative model.

Two fixed templates define how Style Studio talks to the model:

Extraction Template
-------------------
Sent together with every reference image.  It tells the analysis model to
describe only the shared visual execution of the images and to fold in the
user's custom rules::

    [Analyst role + task]

    CRITICAL RULES:
    1. ignore subjects
    2. exact palette, lighting, texture, technique
    3. no glass/glossy/3D/plastic unless dominant
    4. custom instruction (or "None provided.")

    [Output format directive]

Generation Templates
--------------------
One of two templates is chosen by whether a reference image is supplied:

- **Image-conditioned**: redraw the exact structure of the reference image in
  the target style.
- **Text-only**: synthesise a new image from the instruction in the target
  style.

Both embed the style descriptor, the requested aspect ratio and the custom
instruction, which falls back to :data:`DEFAULT_GENERATION_INSTRUCTION`.

Usage
-----
::

    prompt = build_generation_prompt(
        descriptor="Vibrant neon palette, hard rim lighting...",
        aspect_ratio="16:9",
        instruction=None,
        with_reference=True,
    )
"""

from __future__ import annotations

DEFAULT_GENERATION_INSTRUCTION = "Strictly maintain structural adherence without adding elements."
DEFAULT_ASPECT_RATIO = "1:1"
NO_TRAINING_INSTRUCTION = "None provided."

_EXTRACTION_TEMPLATE = """You are an expert art director and style analyst. Your task is to analyze the following images and extract a highly detailed, comprehensive textual description of their SHARED visual style.

CRITICAL RULES:
1. COMPLETELY IGNORE the subjects, objects, or people in the images (e.g., if the images are of cars, do not mention cars).
2. EXTRACT the EXACT color palette (use specific color names), precise lighting, textural details, and artistic techniques.
3. DO NOT hallucinate "glass", "glossy", "3D", or "plastic" aesthetics unless they are undeniably the central style of every provided image.
4. If there are custom user instructions, incorporate them heavily into the stylistic definition: "{instruction}"

Return ONLY the raw descriptive text detailing the style, optimized for a diffusion/generation prompt suffix. Make it punchy, descriptive, and highly specific to the visual execution."""

_REFERENCE_TEMPLATE = """You are a strict and precise style transfer system.
You will be provided with a reference image.
Your singular goal is to REDRAW the exact structural subject matter of the reference image perfectly, but execute it entirely in the following artistic style:

STYLE DEFINITION:
{descriptor}

CRITICAL RULES:
1. DO NOT change the core subject or structural composition of the reference image. Let the reference image strictly guide your output.
2. DO NOT add new objects, people, or items that are not in the reference image.
3. DO NOT apply glossy, glass, or 3D effects unless explicitly stated in the style definition.
4. If the instruction below is "{default_instruction}", you must treat the reference image as sacred geometry and only change the textures/colors to match the style.
5. Apply the precise colors requested in the style definition. Keep the requested Aspect Ratio: {aspect_ratio}.
6. Custom Instruction: "{instruction}"
"""

_TEXT_ONLY_TEMPLATE = """You are a strict and precise style-constrained image generation system.
No reference image is provided. Your singular goal is to SYNTHESIZE a new image from scratch that follows the instruction below, executed entirely in the following artistic style:

STYLE DEFINITION:
{descriptor}

CRITICAL RULES:
1. Depict only what the instruction asks for. DO NOT add unrelated objects, people, or text.
2. DO NOT apply glossy, glass, or 3D effects unless explicitly stated in the style definition.
3. Apply the precise colors, lighting, and technique requested in the style definition.
4. Compose the image for the requested Aspect Ratio: {aspect_ratio}.
5. Custom Instruction: "{instruction}"
"""


def _clean(value: str | None) -> str:
    return (value or "").strip()


def build_extraction_prompt(instruction: str | None = None) -> str:
    """Return the style-extraction instruction.

    Args:
        instruction: Optional custom rules from the user.  Blank values are
            replaced with ``"None provided."``.
    """
    return _EXTRACTION_TEMPLATE.format(instruction=_clean(instruction) or NO_TRAINING_INSTRUCTION)


def build_generation_prompt(
    descriptor: str,
    aspect_ratio: str | None = None,
    instruction: str | None = None,
    *,
    with_reference: bool,
) -> str:
    """Return the style-constrained generation instruction.

    Args:
        descriptor: The project's style descriptor, embedded verbatim.
        aspect_ratio: Requested aspect ratio such as ``"16:9"``.  Defaults to
            ``"1:1"``.
        instruction: Optional custom instruction.  Blank values fall back to
            :data:`DEFAULT_GENERATION_INSTRUCTION`.
        with_reference: ``True`` selects the redraw-the-reference template,
            ``False`` the synthesise-from-scratch template.

    Returns:
        The compiled prompt text.
    """
    template = _REFERENCE_TEMPLATE if with_reference else _TEXT_ONLY_TEMPLATE
    return template.format(
        descriptor=descriptor,
        aspect_ratio=_clean(aspect_ratio) or DEFAULT_ASPECT_RATIO,
        instruction=_clean(instruction) or DEFAULT_GENERATION_INSTRUCTION,
        default_instruction=DEFAULT_GENERATION_INSTRUCTION,
    )
