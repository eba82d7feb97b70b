"""QA harness for the visit slot finder.

Posts a fixed set of scenarios to a running backend and checks every returned
slot against the schedule it was computed from.

Usage:
  python run_qa.py --base http://localhost:8010 --out eval/report_qa
"""

from __future__ import annotations

import argparse
import csv
import json
import math
import statistics
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Optional

import requests


WEEK_START = date(2025, 3, 3)  # Monday
OFFSET = '+01:00'

KOGE = {'lat': 55.458, 'lon': 12.182}
CLIENT_A = {'lat': 55.678, 'lon': 12.565}
CLIENT_B = {'lat': 55.682, 'lon': 12.578}


def iso(day: date, hhmm: str) -> str:
  return f'{day.isoformat()}T{hhmm}:00{OFFSET}'


def meeting(mid: str, title: str, day: date, start: str, end: str, coordinate: Optional[dict] = None) -> dict[str, Any]:
  item: dict[str, Any] = {'id': mid, 'title': title, 'start': iso(day, start), 'end': iso(day, end)}
  if coordinate:
    item['coordinate'] = coordinate
  return item


def fake_week() -> list[dict[str, Any]]:
  """A few meetings spread over the week, some without coordinates."""
  items: list[dict[str, Any]] = []
  for offset in range(5):
    day = WEEK_START + timedelta(days=offset)
    items.append(meeting(f'standup-{offset}', 'Standup', day, '09:00', '09:30'))
    if offset % 2 == 0:
      items.append(meeting(f'client-a-{offset}', 'Client A', day, '11:00', '12:00', CLIENT_A))
    else:
      items.append(meeting(f'client-b-{offset}', 'Client B', day, '13:00', '14:30', CLIENT_B))
  items.append({'id': 'broken', 'title': 'Broken entry', 'time': 'after lunch'})
  return items


def default_scenarios() -> list[dict[str, Any]]:
  wednesday = WEEK_START + timedelta(days=2)
  window = {
    'window_start': iso(WEEK_START, '00:00'),
    'window_end': iso(WEEK_START + timedelta(days=6), '23:59'),
    'now': iso(WEEK_START, '07:00'),
    'clamp_start_to_today': False,
  }
  return [
    {
      'qid': 'koge-to-hoje-taastrup',
      'request': {
        'schedule': [meeting('koge', 'Køge', wednesday, '09:00', '10:00', KOGE)],
        'location_name': 'Høje-Taastrup',
        'duration_minutes': 60,
        'window_start': iso(wednesday, '00:00'),
        'window_end': iso(wednesday, '23:59'),
        'now': iso(WEEK_START, '07:00'),
        'clamp_start_to_today': False,
      },
      'expect_first_start': '11:00',
    },
    {
      'qid': 'fake-week',
      'request': {'schedule': fake_week(), 'location_name': 'Client B', 'duration_minutes': 45, **window},
    },
    {
      'qid': 'empty-week',
      'request': {'schedule': [], 'location_name': 'Roskilde', 'duration_minutes': 60, **window},
      'expect_days': 5,
    },
    {
      'qid': 'long-visit',
      'request': {'schedule': fake_week(), 'location_name': 'Hillerød', 'duration_minutes': 240, **window},
    },
  ]


def load_jsonl(path: Path) -> list[dict[str, Any]]:
  with path.open('r', encoding='utf-8') as fh:
    return [json.loads(line) for line in fh if line.strip()]


def parse_instant(value: Any) -> Optional[datetime]:
  if not isinstance(value, str):
    return None
  try:
    return datetime.fromisoformat(value.replace('Z', '+00:00'))
  except ValueError:
    return None


def busy_intervals(schedule: list[dict[str, Any]]) -> list[tuple[datetime, datetime]]:
  out = []
  for item in schedule:
    start = parse_instant(item.get('start'))
    end = parse_instant(item.get('end'))
    if start and end:
      out.append((start, end))
  return out


@dataclass
class QAResult:
  qid: str
  slots: int
  considered: int
  rejected: int
  best_score: float
  latency_ms: float
  violations: list[str] = field(default_factory=list)
  error: Optional[str] = None


def check_slots(scenario: dict[str, Any], data: dict[str, Any]) -> list[str]:
  """Problems found in the returned slots; empty when everything holds."""
  problems: list[str] = []
  busy = busy_intervals(scenario['request'].get('schedule') or [])
  slots = data.get('slots') or []

  for slot in slots:
    start = parse_instant(slot.get('start'))
    end = parse_instant(slot.get('end'))
    sid = slot.get('slot_id')
    if start is None or end is None:
      problems.append(f'{sid}: unreadable times')
      continue
    if start.minute % 15 or start.second:
      problems.append(f'{sid}: start not on the 15 minute grid')
    if any(start < b_end and end > b_start for b_start, b_end in busy):
      problems.append(f'{sid}: overlaps an existing meeting')
    explain = slot.get('explain') or {}
    for flag in ('fits_gap', 'within_working_hours', 'not_past', 'no_overlap', 'travel_feasible'):
      if explain and explain.get(flag) is False:
        problems.append(f'{sid}: {flag} is false')

  scores = [slot.get('score', 0.0) for slot in slots]
  if not scenario['request'].get('schedule') and slots:
    days = [slot.get('day_key') for slot in slots]
    if days != sorted(days):
      problems.append('empty week not listed chronologically')
  elif scores != sorted(scores):
    problems.append('slots not ordered by score')

  expect_first = scenario.get('expect_first_start')
  if expect_first:
    first = parse_instant(slots[0].get('start')) if slots else None
    if first is None or first.strftime('%H:%M') != expect_first:
      problems.append(f'first slot expected at {expect_first}')

  expect_days = scenario.get('expect_days')
  if expect_days is not None and len({slot.get('day_key') for slot in slots}) != expect_days:
    problems.append(f'expected slots on {expect_days} days')

  return problems


def run_scenario(base_url: str, scenario: dict[str, Any], timeout: float) -> QAResult:
  payload = dict(scenario['request'])
  payload.setdefault('include_explain', True)
  started = time.perf_counter()
  response = requests.post(f'{base_url}/slots', json=payload, timeout=timeout)
  latency_ms = (time.perf_counter() - started) * 1000

  if not response.ok:
    return QAResult(
      qid=scenario['qid'],
      slots=0,
      considered=0,
      rejected=0,
      best_score=float('nan'),
      latency_ms=latency_ms,
      error=f'HTTP {response.status_code}: {response.text[:200]}',
    )

  try:
    data = response.json()
  except ValueError as exc:
    return QAResult(
      qid=scenario['qid'],
      slots=0,
      considered=0,
      rejected=0,
      best_score=float('nan'),
      latency_ms=latency_ms,
      error=f'invalid json: {exc}',
    )

  slots = data.get('slots') or []
  considered = data.get('considered') or []
  return QAResult(
    qid=scenario['qid'],
    slots=len(slots),
    considered=len(considered),
    rejected=sum(1 for c in considered if c.get('status') == 'rejected'),
    best_score=slots[0].get('score', float('nan')) if slots else float('nan'),
    latency_ms=latency_ms,
    violations=check_slots(scenario, data),
  )


def main() -> None:
  parser = argparse.ArgumentParser(description='QA scenarios for the visit slot finder')
  parser.add_argument('--base', default='http://localhost:8010', help='FastAPI base URL')
  parser.add_argument('--scenarios', help='Optional JSONL of extra scenarios ({"qid", "request", ...})')
  parser.add_argument('--concurrency', type=int, default=2, help='Number of worker threads')
  parser.add_argument('--out', default='eval/report_qa', help='Output directory for reports')
  parser.add_argument('--timeout', type=float, default=25.0, help='Request timeout in seconds')
  args = parser.parse_args()

  base_url = args.base.rstrip('/')
  out_dir = Path(args.out)
  out_dir.mkdir(parents=True, exist_ok=True)

  scenarios = default_scenarios()
  if args.scenarios:
    path = Path(args.scenarios)
    if not path.exists():
      raise FileNotFoundError(f'scenarios file not found: {path}')
    scenarios.extend(load_jsonl(path))

  def task(scenario: dict[str, Any]) -> QAResult:
    try:
      return run_scenario(base_url, scenario, args.timeout)
    except requests.RequestException as exc:
      return QAResult(
        qid=scenario['qid'],
        slots=0,
        considered=0,
        rejected=0,
        best_score=float('nan'),
        latency_ms=float('nan'),
        error=str(exc),
      )

  results: list[QAResult] = []
  with ThreadPoolExecutor(max_workers=max(1, args.concurrency)) as executor:
    futures = [executor.submit(task, scenario) for scenario in scenarios]
    for future in as_completed(futures):
      results.append(future.result())
  results.sort(key=lambda item: item.qid)

  metrics_path = out_dir / 'qa.csv'
  with metrics_path.open('w', newline='', encoding='utf-8') as fh:
    writer = csv.writer(fh)
    writer.writerow(['qid', 'slots', 'considered', 'rejected', 'best_score', 'latency_ms', 'violations', 'error'])
    for item in results:
      writer.writerow([
        item.qid,
        item.slots,
        item.considered,
        item.rejected,
        f'{item.best_score:.1f}' if math.isfinite(item.best_score) else 'nan',
        f'{item.latency_ms:.1f}' if math.isfinite(item.latency_ms) else 'nan',
        '; '.join(item.violations),
        item.error or '',
      ])

  latencies = [item.latency_ms for item in results if not item.error and math.isfinite(item.latency_ms)]
  failed = [item for item in results if item.error or item.violations]
  summary_path = out_dir / 'report.md'
  with summary_path.open('w', encoding='utf-8') as fh:
    fh.write('# QA Summary\n\n')
    fh.write(f'- Scenarios: {len(results)}\n')
    fh.write(f'- Failed: {len(failed)}\n')
    if latencies:
      fh.write(f'- Latency median (ms): {statistics.median(latencies):.1f}\n')
    if failed:
      fh.write('\n## Problems\n')
      for item in failed:
        for problem in ([item.error] if item.error else item.violations):
          fh.write(f'- {item.qid}: {problem}\n')

  print(f'QA finished. {len(failed)} of {len(results)} scenarios failed. Results in {metrics_path}')


if __name__ == '__main__':
  main()
