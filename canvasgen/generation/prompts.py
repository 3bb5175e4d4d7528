"""Prompt templates sent to providers."""

IMAGE_INSTRUCTION = "Generate the actual image, do not provide text descriptions."

TRANSFORM_TEMPLATE = (
    "Transform the provided images based on this description: {prompt}. "
    "Create a new photorealistic, high-quality image. " + IMAGE_INSTRUCTION
)

CREATE_TEMPLATE = (
    "Create a photorealistic, high-quality image: {prompt}. " + IMAGE_INSTRUCTION
)

OPTIMIZE_INSTRUCTION = (
    "Include concrete visual details such as style, colors, lighting and composition "
    "so an image model can produce a better result. "
    "Return only the optimized prompt, without any other explanation."
)

OPTIMIZE_WITH_IMAGES_TEMPLATE = (
    'Analyze these images and, based on the user\'s description "{prompt}", '
    "write a more detailed and specific image generation prompt. " + OPTIMIZE_INSTRUCTION
)

OPTIMIZE_TEMPLATE = (
    'Rewrite this image generation prompt to be more detailed and specific: "{prompt}". '
    + OPTIMIZE_INSTRUCTION
)


def build_image_prompt(prompt: str, has_images: bool) -> str:
    """Wrap the user's prompt with the image-generation instruction."""
    template = TRANSFORM_TEMPLATE if has_images else CREATE_TEMPLATE
    return template.format(prompt=prompt.strip())


def build_optimize_prompt(prompt: str, has_images: bool = False) -> str:
    template = OPTIMIZE_WITH_IMAGES_TEMPLATE if has_images else OPTIMIZE_TEMPLATE
    return template.format(prompt=prompt.strip())
