"""Read-only analysis of an export snapshot (the ``test`` command)."""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

from models import ExportSnapshot
from .translation_map import TranslationMap

logger = logging.getLogger(__name__)

MISSING = '-'


class SnapshotInspector:
    """Summaries, translation tables and consistency checks for a snapshot."""

    def __init__(self, snapshot: ExportSnapshot):
        self.snapshot = snapshot
        self.meta = snapshot.meta
        self.translation_map = TranslationMap(snapshot.translations)

    def summary(self) -> Dict[str, Any]:
        languages = self.meta.languages
        complete = sum(
            1 for _, lang_map in self.translation_map.groups()
            if all(lang in lang_map for lang in languages)
        )
        return {
            'meta': self.meta.to_dict(),
            'counts': {lang: len(items) for lang, items in self.snapshot.data.items()},
            'total': self.snapshot.total_entities,
            'translation_groups': len(self.translation_map),
            'complete_groups': complete,
        }

    def translation_rows(self) -> List[Dict[str, Any]]:
        """
        One row per translation group whose key belongs to a main-language entity.

        Each row maps every configured language to its original ID or ``-``.
        """
        main = self.meta.main_language
        main_slugs = {item.get('slug') for item in self.snapshot.entities(main)}
        rows = []
        for key, lang_map in sorted(self.translation_map.groups()):
            if key not in main_slugs:
                continue
            rows.append(self._row(key, lang_map))
        return rows

    def orphan_rows(self) -> List[Dict[str, Any]]:
        """Translation groups with no main-language member."""
        main = self.meta.main_language
        return [
            self._row(key, lang_map)
            for key, lang_map in sorted(self.translation_map.groups())
            if main not in lang_map
        ]

    def coverage(self) -> Dict[str, Dict[str, Any]]:
        """Share of main-language entities translated into each other language."""
        main = self.meta.main_language
        main_ids = [item['id'] for item in self.snapshot.entities(main)]
        result = {}
        for lang in self.meta.other_languages:
            translated = sum(
                1 for entity_id in main_ids
                if self.translation_map.counterpart(main, entity_id, lang) is not None
            )
            total = len(main_ids)
            result[lang] = {
                'translated': translated,
                'total': total,
                'percent': (translated / total * 100) if total else 0.0,
            }
        return result

    def find(self, term: str) -> List[Dict[str, Any]]:
        """Entities whose slug or name contains ``term``, with their translation group."""
        needle = term.lower()
        matches = []
        for lang, items in self.snapshot.data.items():
            for item in items:
                haystack = f"{unquote(str(item.get('slug', '')))} {item.get('name', '')}".lower()
                if needle not in haystack:
                    continue
                group = self.translation_map.group_of(lang, item['id'])
                matches.append({
                    'lang': lang,
                    'id': item['id'],
                    'slug': item.get('slug'),
                    'name': item.get('name'),
                    'parent': item.get('parent', 0),
                    'translations': dict(group[1]) if group else {},
                })
        return matches

    def issues(self) -> List[str]:
        """Inconsistencies between the translation map and the data section."""
        problems = []
        present = {
            (lang, int(item['id'])) for lang, items in self.snapshot.data.items() for item in items
        }
        for key, lang_map in self.translation_map.groups():
            for lang, entity_id in lang_map.items():
                if lang in self.snapshot.data and (lang, entity_id) not in present:
                    problems.append(
                        f"Translation group '{key}' lists {lang}:{entity_id} which is not in the export"
                    )

        for lang, items in self.snapshot.data.items():
            for item in items:
                if item.get('translations') and self.translation_map.group_of(lang, item['id']) is None:
                    problems.append(
                        f"{lang} entity {item['id']} ('{item.get('slug')}') has translations but no group"
                    )
        return problems

    def _row(self, key: str, lang_map: Dict[str, int]) -> Dict[str, Any]:
        display = unquote(key) if '%' in key else key
        row: Dict[str, Any] = {'key': display}
        for lang in self.meta.languages:
            row[lang] = lang_map.get(lang, MISSING)
        return row


def format_inspection(inspector: SnapshotInspector, search: Optional[str] = None) -> str:
    """Render an inspection as plain text tables."""
    summary = inspector.summary()
    meta = summary['meta']
    languages = inspector.meta.languages
    lines = [
        "Export Metadata:",
        f"  Exported at: {meta['exported_at']}",
        f"  Source site: {meta['source_site']}",
        f"  Main language: {meta['main_language']}",
        f"  Other languages: {', '.join(meta['other_languages']) or 'none'}",
        "",
        "Count by Language:",
    ]
    for lang, count in summary['counts'].items():
        lines.append(f"  {lang}: {count}")
    lines.append(f"  total: {summary['total']}")
    lines.append("")
    lines.append(
        f"Translation groups: {summary['translation_groups']} "
        f"({summary['complete_groups']} complete)"
    )

    def table(rows: List[Dict[str, Any]]) -> None:
        header = "Slug".ljust(40) + " ".join(lang.upper().ljust(8) for lang in languages)
        lines.append(header)
        lines.append("-" * len(header))
        for row in rows:
            key = row['key'] if len(row['key']) <= 37 else row['key'][:34] + "..."
            lines.append(key.ljust(40) + " ".join(str(row[lang]).ljust(8) for lang in languages))

    rows = inspector.translation_rows()
    if rows:
        lines.append("")
        table(rows)

    orphans = inspector.orphan_rows()
    if orphans:
        lines.append("")
        lines.append(f"Groups without {inspector.meta.main_language.upper()}:")
        table(orphans)

    coverage = inspector.coverage()
    if coverage:
        lines.append("")
        lines.append("Translation Coverage:")
        for lang, info in coverage.items():
            lines.append(
                f"  {lang}: {info['translated']}/{info['total']} ({info['percent']:.1f}%)"
            )

    if search:
        lines.append("")
        matches = inspector.find(search)
        lines.append(f"Matches for '{search}': {len(matches)}")
        for match in matches:
            links = ", ".join(f"{lang}:{eid}" for lang, eid in match['translations'].items()) or 'none'
            lines.append(
                f"  [{match['lang']}] #{match['id']} {match['slug']} "
                f"(parent {match['parent']}) translations: {links}"
            )

    problems = inspector.issues()
    if problems:
        lines.append("")
        lines.append(f"Issues ({len(problems)}):")
        lines.extend(f"  {problem}" for problem in problems)

    return "\n".join(lines)


__all__ = ['SnapshotInspector', 'format_inspection']
