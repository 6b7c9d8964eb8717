"""
Dashboard view state.

The dashboard is described by one immutable `DashboardState` and changed only
through `reduce(state, action)`. `render(state)` turns it into the JSON view
the client draws. Actions are plain dicts with a `type` key, built with the
helpers below.
"""
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple, FrozenSet

from mediconnect.services.records_service import SECTIONS, monthly_histogram

PATIENT_LOADED = 'patient_loaded'
LOAD_FAILED = 'load_failed'
SHOW_MORE = 'show_more'
OPEN_IMAGE = 'open_image'
CLOSE_IMAGE = 'close_image'
TOGGLE_DROPDOWN = 'toggle_dropdown'
NOTIFY = 'notify'

ROLE_SECTIONS = {
    'patient': SECTIONS,
    'doctor': SECTIONS,
    'chemist': ('prescriptions',),
}

COLLAPSED_COUNT = 1


@dataclass(frozen=True)
class DashboardState:
    role: str
    patient: Optional[dict] = None
    prescriptions: Tuple[dict, ...] = ()
    tests: Tuple[dict, ...] = ()
    allergies: Tuple[dict, ...] = ()
    expanded: FrozenSet[str] = field(default_factory=frozenset)
    modal_image: Optional[str] = None
    modal_title: str = ''
    dropdown_open: bool = False
    message: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def sections(self):
        return ROLE_SECTIONS.get(self.role, ())


def patient_loaded(bundle):
    return {'type': PATIENT_LOADED, 'bundle': bundle}


def load_failed(kind, message='Patient not found!'):
    return {'type': LOAD_FAILED, 'kind': kind, 'message': message}


def show_more(section):
    return {'type': SHOW_MORE, 'section': section}


def open_image(test_id):
    return {'type': OPEN_IMAGE, 'test_id': test_id}


def close_image():
    return {'type': CLOSE_IMAGE}


def toggle_dropdown():
    return {'type': TOGGLE_DROPDOWN}


def notify(message):
    return {'type': NOTIFY, 'message': message}


def _records(bundle, name):
    return tuple(record.to_dict() for record in bundle.section(name))


def reduce(state, action):
    """Returns the state after `action`. Never mutates `state`."""
    action_type = action['type']

    if action_type == PATIENT_LOADED:
        bundle = action['bundle']
        # New data always starts collapsed
        return replace(
            state,
            patient=bundle.patient.to_dict(),
            prescriptions=_records(bundle, 'prescriptions'),
            tests=_records(bundle, 'tests'),
            allergies=_records(bundle, 'allergies'),
            expanded=frozenset(),
            modal_image=None,
            modal_title='',
            message=None,
            error_kind=None,
        )

    if action_type == LOAD_FAILED:
        # No partial state survives a failed load
        return replace(
            state,
            patient=None,
            prescriptions=(),
            tests=(),
            allergies=(),
            expanded=frozenset(),
            modal_image=None,
            modal_title='',
            message=action.get('message'),
            error_kind=action['kind'],
        )

    if action_type == SHOW_MORE:
        section = action['section']
        if section not in SECTIONS:
            raise ValueError(f"Unknown section '{section}'")
        return replace(state, expanded=state.expanded | {section})

    if action_type == OPEN_IMAGE:
        for test in state.tests:
            if test['test_id'] == action['test_id'] and test.get('image_url'):
                return replace(state, modal_image=test['image_url'], modal_title=test['test_name'])
        return state

    if action_type == CLOSE_IMAGE:
        return replace(state, modal_image=None, modal_title='')

    if action_type == TOGGLE_DROPDOWN:
        return replace(state, dropdown_open=not state.dropdown_open)

    if action_type == NOTIFY:
        return replace(state, message=action['message'], error_kind=None)

    raise ValueError(f"Unknown action '{action_type}'")


def visible_items(state, section):
    items = getattr(state, section)
    if section in state.expanded:
        return list(items)
    return list(items[:COLLAPSED_COUNT])


def render(state):
    """Builds the JSON view model for the current role."""
    view = {
        'role': state.role,
        'patient': state.patient,
        'dropdown_open': state.dropdown_open,
        'message': state.message,
        'error_kind': state.error_kind,
        'sections': {},
        'insights': None,
        'modal': None,
    }
    if state.patient is None:
        return view

    can_add = state.role == 'doctor'
    for section in state.sections:
        items = getattr(state, section)
        view['sections'][section] = {
            'items': visible_items(state, section),
            'total': len(items),
            'has_more': section not in state.expanded and len(items) > COLLAPSED_COUNT,
            'can_add': can_add,
        }

    if state.role in ('patient', 'doctor'):
        view['insights'] = {
            'prescriptions_per_month': monthly_histogram(state.prescriptions),
            'tests_per_month': monthly_histogram(state.tests),
            'totals': {section: len(getattr(state, section)) for section in SECTIONS},
        }
        if state.modal_image:
            view['modal'] = {'image_url': state.modal_image, 'title': state.modal_title}

    return view
