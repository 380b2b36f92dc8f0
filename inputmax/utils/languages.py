"""Language names, codes and filesystem slugs used for lessons."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass

LANGUAGE_CODES: dict[str, str] = {
  "Afrikaans": "af",
  "Arabic": "ar",
  "Armenian": "hy",
  "Azerbaijani": "az",
  "Belarusian": "be",
  "Bosnian": "bs",
  "Bulgarian": "bg",
  "Catalan": "ca",
  "Chinese (Simplified)": "zh-Hans",
  "Chinese (Traditional)": "zh-Hant",
  "Croatian": "hr",
  "Czech": "cs",
  "Danish": "da",
  "Dutch": "nl",
  "English": "en",
  "Estonian": "et",
  "Finnish": "fi",
  "French": "fr",
  "French (Canada)": "fr",
  "Galician": "gl",
  "German": "de",
  "Greek": "el",
  "Hebrew": "he",
  "Hindi": "hi",
  "Hungarian": "hu",
  "Icelandic": "is",
  "Indonesian": "id",
  "Italian": "it",
  "Japanese": "ja",
  "Kannada": "kn",
  "Kazakh": "kk",
  "Korean": "ko",
  "Latvian": "lv",
  "Lithuanian": "lt",
  "Macedonian": "mk",
  "Malay": "ms",
  "Marathi": "mr",
  "Maori": "mi",
  "Nepali": "ne",
  "Norwegian": "no",
  "Persian": "fa",
  "Polish": "pl",
  "Portuguese (Portugal)": "pt",
  "Portuguese (Brazil)": "pt",
  "Romanian": "ro",
  "Russian": "ru",
  "Serbian": "sr",
  "Slovak": "sk",
  "Slovenian": "sl",
  "Spanish": "es",
  "Spanish (Latinoamérica)": "es",
  "Spanish (Mexico)": "es",
  "Swahili": "sw",
  "Swedish": "sv",
  "Tagalog": "tl",
  "Tamil": "ta",
  "Thai": "th",
  "Turkish": "tr",
  "Ukrainian": "uk",
  "Urdu": "ur",
  "Vietnamese": "vi",
  "Welsh": "cy",
}

_CHINESE_MARKERS = ("chinese", "mandarin", "中文", "简体", "繁體")
_CJK_MARKERS = ("chinese", "japanese", "korean")
_SLUG_UNSAFE = re.compile(r"[^A-Za-z0-9_\-]+")


@dataclass(frozen=True)
class LessonLanguages:
  """Both lanes of a lesson: display names, codes and short labels."""

  target_name: str
  translation_name: str
  target_code: str
  translation_code: str
  target_short: str
  translation_short: str


def language_code(display_name: str) -> str:
  """Map a display name to the code used for speech and files."""
  code = LANGUAGE_CODES.get(display_name)
  if code is not None:
    return code
  return display_name.strip().lower().replace(" ", "-")


def short_label(display_name: str) -> str:
  """Short UI label, e.g. DE or ZH-Hans; unknown names fall back to themselves."""
  code = LANGUAGE_CODES.get(display_name)
  if code is None:
    return display_name
  base, _, script = code.partition("-")
  return f"{base.upper()}-{script}" if script else base.upper()


def resolve_languages(target: str, translation: str) -> LessonLanguages:
  return LessonLanguages(
    target_name=target,
    translation_name=translation,
    target_code=language_code(target),
    translation_code=language_code(translation),
    target_short=short_label(target),
    translation_short=short_label(translation),
  )


def is_cjk_language(name: str) -> bool:
  lowered = name.lower()
  return any(marker in lowered for marker in _CJK_MARKERS)


def is_chinese_language(name: str) -> bool:
  lowered = name.lower()
  return any(marker in lowered for marker in _CHINESE_MARKERS)


def same_language(left: str, right: str) -> bool:
  return left.strip().casefold() == right.strip().casefold()


def slugify(text: str) -> str:
  """ASCII-fold text into a filesystem-safe slug; spaces become underscores."""
  folded = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
  folded = re.sub(r"\s+", "_", folded.strip())
  slug = _SLUG_UNSAFE.sub("", folded).strip("_-")
  return slug or "lesson"


def language_slug(display_name: str) -> str:
  """Six-character lowercase prefix used in audio file names."""
  return slugify(display_name).lower()[:6]
