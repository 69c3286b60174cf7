"""Prompt templates for the aggregate pattern report.

One complete template per language. Only the prose is localized; JSON field
names are the same in every template because the validator checks them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Dict, Mapping, Tuple

from reverie.domains.patterns.policy import PatternPolicy
from reverie.domains.patterns.schemas.report_schemas import ARRAY_FIELDS, LONG_TEXT_FIELDS

# Shape shown to the model; keys are the cross-language vocabulary.
RESPONSE_SHAPE: Dict[str, object] = {
    "overall_insights": "...",
    "temporal_patterns": "...",
    "emotional_landscape": "...",
    "personal_growth": "...",
    "integration_guidance": "...",
    "themes": [{"name": "...", "frequency": 0, "significance": "...", "evolution": "..."}],
    "emotions": [{"emotion": "...", "frequency": 0, "trend": "...", "context": "..."}],
    "symbols": [{"symbol": "...", "frequency": 0, "interpretation": "...", "personal_meaning": "..."}],
    "recommendations": [{"area": "...", "action": "...", "rationale": "..."}],
    "exercises": [{"title": "...", "instructions": "...", "duration": "..."}],
    "reflection_questions": ["..."],
}


@dataclass(frozen=True)
class PromptTemplate:
    language: str
    system: str
    intro: str
    data_heading: str
    shape_heading: str
    fields_heading: str
    array_minimum: str  # formatted with {n}
    text_minimum: str  # formatted with {n}
    field_descriptions: Mapping[str, str]
    rules: Tuple[str, ...]


@dataclass(frozen=True)
class PromptMessages:
    language: str
    system: str
    user: str

    @property
    def size(self) -> int:
        return len(self.system) + len(self.user)


ENGLISH = PromptTemplate(
    language="en",
    system=(
        "You are an experienced psychologist and journaling coach who specializes in recognizing "
        "long-term patterns across a person's journal entries. You always answer with a single "
        "valid JSON object and nothing else. Write every text value in English and speak "
        "directly to the writer of the journal using \"you\"."
    ),
    intro=(
        "Analyze the journal entries below together with their individual analyses and write a "
        "comprehensive pattern analysis of the whole period they cover."
    ),
    data_heading="JOURNAL DATA (oldest first):",
    shape_heading="Respond with a JSON object of exactly this shape:",
    fields_heading="Field requirements:",
    array_minimum="at least {n} items",
    text_minimum="at least {n} characters",
    field_descriptions={
        "overall_insights": "a thorough overview of the most important patterns you noticed",
        "temporal_patterns": "how your entries change over time, including shifts and recurring cycles",
        "emotional_landscape": "the emotional climate of the period and how your feelings connect",
        "personal_growth": "what the entries reveal about your development and inner resources",
        "integration_guidance": "how you can bring these insights into your everyday life",
        "themes": "recurring themes; frequency is the number of entries, evolution describes how the theme changed",
        "emotions": "recurring emotions with their trend (rising, falling, stable) and the situations they appear in",
        "symbols": "recurring images or symbols with a psychological interpretation and their personal meaning for you",
        "recommendations": "concrete recommendations, each with an area of life, an action and a rationale",
        "exercises": "practical exercises with step-by-step instructions and a duration",
        "reflection_questions": "open questions that invite you to reflect further",
    },
    rules=(
        "Address the writer in the second person (\"you\", \"your\") throughout.",
        "Base every statement on the data above; do not invent events.",
        "Keep the JSON field names exactly as shown, in English.",
        "Return only the JSON object, without markdown or commentary.",
    ),
)

SLOVENIAN = PromptTemplate(
    language="sl",
    system=(
        "Ste izkušen psiholog in svetovalec za pisanje dnevnika, specializiran za prepoznavanje "
        "dolgoročnih vzorcev v dnevniških zapisih. Vedno odgovorite z enim samim veljavnim JSON "
        "objektom in ničesar drugega. Vsa besedila napišite v slovenščini in se neposredno "
        "obračajte na avtorja dnevnika v drugi osebi."
    ),
    intro=(
        "Analizirajte spodnje dnevniške zapise skupaj z njihovimi posameznimi analizami in "
        "pripravite celovito analizo vzorcev za celotno obdobje."
    ),
    data_heading="PODATKI IZ DNEVNIKA (od najstarejšega):",
    shape_heading="Odgovorite z JSON objektom natanko te oblike:",
    fields_heading="Zahteve za polja:",
    array_minimum="vsaj {n} elementov",
    text_minimum="vsaj {n} znakov",
    field_descriptions={
        "overall_insights": "temeljit pregled najpomembnejših vzorcev, ki ste jih opazili",
        "temporal_patterns": "kako se vaši zapisi spreminjajo skozi čas, vključno s premiki in ponavljajočimi se cikli",
        "emotional_landscape": "čustveno ozračje obdobja in kako so vaša čustva med seboj povezana",
        "personal_growth": "kaj zapisi razkrivajo o vašem razvoju in notranjih virih",
        "integration_guidance": "kako lahko ta spoznanja vključite v vsakdanje življenje",
        "themes": "ponavljajoče se teme; frequency je število zapisov, evolution opiše, kako se je tema spreminjala",
        "emotions": "ponavljajoča se čustva s trendom (naraščajoč, padajoč, stalen) in situacijami, v katerih se pojavijo",
        "symbols": "ponavljajoče se podobe ali simboli s psihološko interpretacijo in osebnim pomenom za vas",
        "recommendations": "konkretna priporočila, vsako s področjem življenja, dejanjem in utemeljitvijo",
        "exercises": "praktične vaje z navodili po korakih in trajanjem",
        "reflection_questions": "odprta vprašanja, ki vas spodbujajo k nadaljnjemu razmisleku",
    },
    rules=(
        "Avtorja ves čas nagovarjajte v drugi osebi (\"vi\", \"vaš\").",
        "Vsako trditev utemeljite na zgornjih podatkih; ne izmišljujte si dogodkov.",
        "Imena JSON polj ohranite natanko takšna, kot so prikazana, v angleščini.",
        "Vrnite samo JSON objekt, brez markdowna ali komentarjev.",
    ),
)

GERMAN = PromptTemplate(
    language="de",
    system=(
        "Sie sind ein erfahrener Psychologe und Tagebuch-Coach, spezialisiert auf das Erkennen "
        "langfristiger Muster in Tagebucheinträgen. Sie antworten immer mit einem einzigen "
        "gültigen JSON-Objekt und sonst nichts. Schreiben Sie alle Texte auf Deutsch und sprechen "
        "Sie die schreibende Person direkt an."
    ),
    intro=(
        "Analysieren Sie die folgenden Tagebucheinträge zusammen mit ihren Einzelanalysen und "
        "erstellen Sie eine umfassende Musteranalyse des gesamten Zeitraums."
    ),
    data_heading="TAGEBUCHDATEN (älteste zuerst):",
    shape_heading="Antworten Sie mit einem JSON-Objekt genau dieser Form:",
    fields_heading="Anforderungen an die Felder:",
    array_minimum="mindestens {n} Einträge",
    text_minimum="mindestens {n} Zeichen",
    field_descriptions={
        "overall_insights": "ein gründlicher Überblick über die wichtigsten Muster, die Ihnen aufgefallen sind",
        "temporal_patterns": "wie sich Ihre Einträge im Laufe der Zeit verändern, einschließlich Wendepunkten und Zyklen",
        "emotional_landscape": "das emotionale Klima des Zeitraums und wie Ihre Gefühle zusammenhängen",
        "personal_growth": "was die Einträge über Ihre Entwicklung und Ihre inneren Ressourcen zeigen",
        "integration_guidance": "wie Sie diese Erkenntnisse in Ihren Alltag übertragen können",
        "themes": "wiederkehrende Themen; frequency ist die Anzahl der Einträge, evolution beschreibt die Entwicklung des Themas",
        "emotions": "wiederkehrende Gefühle mit ihrem Trend (steigend, fallend, stabil) und den Situationen, in denen sie auftreten",
        "symbols": "wiederkehrende Bilder oder Symbole mit psychologischer Deutung und ihrer persönlichen Bedeutung für Sie",
        "recommendations": "konkrete Empfehlungen, jeweils mit Lebensbereich, Handlung und Begründung",
        "exercises": "praktische Übungen mit schrittweiser Anleitung und Dauer",
        "reflection_questions": "offene Fragen, die Sie zum weiteren Nachdenken einladen",
    },
    rules=(
        "Sprechen Sie die schreibende Person durchgehend direkt an (\"Sie\", \"Ihr\").",
        "Stützen Sie jede Aussage auf die obigen Daten; erfinden Sie keine Ereignisse.",
        "Behalten Sie die JSON-Feldnamen genau wie gezeigt auf Englisch bei.",
        "Geben Sie nur das JSON-Objekt zurück, ohne Markdown oder Kommentare.",
    ),
)

SPANISH = PromptTemplate(
    language="es",
    system=(
        "Eres un psicólogo experimentado y acompañante de escritura de diarios, especializado en "
        "reconocer patrones a largo plazo en las entradas de un diario. Respondes siempre con un "
        "único objeto JSON válido y nada más. Escribe todos los textos en español y dirígete "
        "directamente a la persona que escribe el diario usando \"tú\"."
    ),
    intro=(
        "Analiza las siguientes entradas del diario junto con sus análisis individuales y elabora "
        "un análisis de patrones completo de todo el periodo."
    ),
    data_heading="DATOS DEL DIARIO (de la más antigua a la más reciente):",
    shape_heading="Responde con un objeto JSON exactamente con esta forma:",
    fields_heading="Requisitos de los campos:",
    array_minimum="al menos {n} elementos",
    text_minimum="al menos {n} caracteres",
    field_descriptions={
        "overall_insights": "una visión general detallada de los patrones más importantes que observaste",
        "temporal_patterns": "cómo cambian tus entradas con el tiempo, incluidos los giros y los ciclos recurrentes",
        "emotional_landscape": "el clima emocional del periodo y cómo se relacionan tus emociones",
        "personal_growth": "lo que las entradas revelan sobre tu desarrollo y tus recursos internos",
        "integration_guidance": "cómo puedes llevar estas ideas a tu vida cotidiana",
        "themes": "temas recurrentes; frequency es el número de entradas, evolution describe cómo cambió el tema",
        "emotions": "emociones recurrentes con su tendencia (creciente, decreciente, estable) y las situaciones en que aparecen",
        "symbols": "imágenes o símbolos recurrentes con una interpretación psicológica y su significado personal para ti",
        "recommendations": "recomendaciones concretas, cada una con un área de la vida, una acción y una justificación",
        "exercises": "ejercicios prácticos con instrucciones paso a paso y una duración",
        "reflection_questions": "preguntas abiertas que te invitan a seguir reflexionando",
    },
    rules=(
        "Dirígete a la persona siempre en segunda persona (\"tú\", \"tu\").",
        "Basa cada afirmación en los datos anteriores; no inventes acontecimientos.",
        "Mantén los nombres de los campos JSON exactamente como se muestran, en inglés.",
        "Devuelve solo el objeto JSON, sin markdown ni comentarios.",
    ),
)

TEMPLATES: Mapping[str, PromptTemplate] = {
    tpl.language: tpl for tpl in (ENGLISH, SLOVENIAN, GERMAN, SPANISH)
}


def get_template(language: str, fallback: str = "en") -> PromptTemplate:
    return TEMPLATES.get(language) or TEMPLATES[fallback]


def _field_lines(template: PromptTemplate, policy: PatternPolicy) -> list[str]:
    lines = []
    for name in LONG_TEXT_FIELDS:
        minimum = template.text_minimum.format(n=policy.min_long_text_chars)
        lines.append(f"- {name}: {template.field_descriptions[name]} ({minimum})")
    for name in ARRAY_FIELDS:
        minimum = template.array_minimum.format(n=policy.array_minimums[name])
        lines.append(f"- {name}: {template.field_descriptions[name]} ({minimum})")
    return lines


def build_prompt(language: str, bundle_text: str, policy: PatternPolicy) -> PromptMessages:
    """Render the system and user messages for ``language``."""
    template = get_template(language, policy.fallback_language)
    user = "\n\n".join(
        [
            template.intro,
            f"{template.data_heading}\n{bundle_text}",
            f"{template.shape_heading}\n{json.dumps(RESPONSE_SHAPE, indent=2)}",
            template.fields_heading + "\n" + "\n".join(_field_lines(template, policy)),
            "\n".join(f"- {rule}" for rule in template.rules),
        ]
    )
    return PromptMessages(language=template.language, system=template.system, user=user)


__all__ = [
    "PromptMessages",
    "PromptTemplate",
    "RESPONSE_SHAPE",
    "TEMPLATES",
    "build_prompt",
    "get_template",
]
