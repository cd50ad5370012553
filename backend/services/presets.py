"""Built-in transformation presets."""

from dataclasses import asdict, dataclass
from typing import List, Optional


@dataclass(frozen=True)
class TransformationPreset:
    id: str
    name: str
    description: str
    instruction_template: str
    category: str  # tone | format | length
    icon: str
    recommended_temperature: float

    def to_dict(self) -> dict:
        return asdict(self)


TRANSFORMATION_PRESETS: List[TransformationPreset] = [
    TransformationPreset(
        id="professional",
        name="Make Professional",
        description="Transform casual text into professional communication",
        instruction_template=(
            "Rewrite this text in a professional, formal tone suitable for business communication"
        ),
        category="tone",
        icon="💼",
        recommended_temperature=0.6,
    ),
    TransformationPreset(
        id="casual",
        name="Make Casual",
        description="Convert formal text to casual, friendly language",
        instruction_template="Rewrite this text in a casual, friendly tone",
        category="tone",
        icon="😊",
        recommended_temperature=0.7,
    ),
    TransformationPreset(
        id="bullet-points",
        name="Bullet Points",
        description="Convert text into clear, structured bullet points",
        instruction_template="Convert this text into clear, well-organized bullet points",
        category="format",
        icon="📝",
        recommended_temperature=0.4,
    ),
    TransformationPreset(
        id="summary",
        name="Summarize",
        description="Create a concise summary of the main points",
        instruction_template="Create a concise summary of the main points in this text",
        category="length",
        icon="📄",
        recommended_temperature=0.5,
    ),
    TransformationPreset(
        id="expand",
        name="Expand",
        description="Add more detail and explanation to the text",
        instruction_template=(
            "Expand this text with more detail and explanation while maintaining the core message"
        ),
        category="length",
        icon="📈",
        recommended_temperature=0.8,
    ),
    TransformationPreset(
        id="simplify",
        name="Simplify",
        description="Make complex text easier to understand",
        instruction_template=(
            "Simplify this text to make it easier to understand for a general audience"
        ),
        category="length",
        icon="🎯",
        recommended_temperature=0.5,
    ),
    TransformationPreset(
        id="academic",
        name="Academic Style",
        description="Convert to academic writing style",
        instruction_template=(
            "Rewrite this text in an academic style with proper citations and formal language"
        ),
        category="tone",
        icon="🎓",
        recommended_temperature=0.4,
    ),
    TransformationPreset(
        id="creative",
        name="Creative Writing",
        description="Transform into creative, engaging prose",
        instruction_template=(
            "Rewrite this text in a creative, engaging style with vivid descriptions"
        ),
        category="tone",
        icon="✨",
        recommended_temperature=0.9,
    ),
    TransformationPreset(
        id="email",
        name="Email Format",
        description="Structure as a professional email",
        instruction_template=(
            "Format this text as a professional email with proper greeting and closing"
        ),
        category="format",
        icon="📧",
        recommended_temperature=0.6,
    ),
    TransformationPreset(
        id="social-media",
        name="Social Media",
        description="Optimize for social media platforms",
        instruction_template=(
            "Rewrite this text to be engaging and suitable for social media platforms"
        ),
        category="format",
        icon="📱",
        recommended_temperature=0.8,
    ),
    TransformationPreset(
        id="technical",
        name="Technical Documentation",
        description="Convert to technical documentation style",
        instruction_template="Rewrite this text as clear, precise technical documentation",
        category="tone",
        icon="⚙️",
        recommended_temperature=0.3,
    ),
    TransformationPreset(
        id="persuasive",
        name="Persuasive",
        description="Make the text more convincing and persuasive",
        instruction_template="Rewrite this text to be more persuasive and compelling",
        category="tone",
        icon="🎯",
        recommended_temperature=0.7,
    ),
]

_PRESETS_BY_ID = {preset.id: preset for preset in TRANSFORMATION_PRESETS}


def get_preset(preset_id: str) -> Optional[TransformationPreset]:
    return _PRESETS_BY_ID.get(preset_id)


def preset_categories() -> List[str]:
    """Distinct categories in first-seen order."""
    seen: List[str] = []
    for preset in TRANSFORMATION_PRESETS:
        if preset.category not in seen:
            seen.append(preset.category)
    return seen
