"""
Template catalog: the built-in document templates plus user templates
persisted in the key-value store.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple

from enhancemd.core.config import TEMPLATES_STORE_KEY, USER_TEMPLATE_PREFIX
from enhancemd.core.errors import Diagnostic
from enhancemd.core.store import KeyValueStore
from enhancemd.features.variables import Variable, expand

logger = logging.getLogger(__name__)


@dataclass
class Template:
    id: str
    name: str
    content: str
    variables: List[Variable] = field(default_factory=list)
    category: Optional[str] = None
    description: Optional[str] = None

    @property
    def is_user_template(self) -> bool:
        return self.id.startswith(USER_TEMPLATE_PREFIX)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'description': self.description,
            'content': self.content,
            'variables': [v.to_dict() for v in self.variables],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Template':
        return cls(
            id=data.get('id', ''),
            name=data['name'],
            content=data.get('content', ''),
            variables=[Variable.from_dict(v) for v in data.get('variables', [])],
            category=data.get('category'),
            description=data.get('description'),
        )


PROPOSAL_BODY = """# {{companyName}} Business Proposal

## Executive Summary

We are pleased to present this proposal for {{projectName}} to {{clientName}}.

### Project Overview
- **Start Date**: {{startDate}}
- **Duration**: {{duration}} months
- **Budget**: ${{budget}}
- **Monthly Budget**: ${{= budget / duration }}

### Team Members
{{#teamMembers}}
- {{name}} - {{role}}
{{/teamMembers}}

### Key Deliverables
1. {{deliverable1}}
2. {{deliverable2}}
3. {{deliverable3}}

---

*Prepared by {{authorName}} on {{date}}*"""

MEETING_NOTES_BODY = """# Meeting Notes: {{meetingTitle}}

**Date**: {{date}}
**Time**: {{time}}
**Location**: {{location}}

## Attendees
{{#attendees}}
- {{name}} ({{department}})
{{/attendees}}

## Agenda
{{#agendaItems}}
1. {{item}}
{{/agendaItems}}

## Discussion Points
{{discussionNotes}}

## Action Items
{{#actionItems}}
- [ ] {{task}} - **Assigned to**: {{assignee}} - **Due**: {{dueDate}}
{{/actionItems}}

## Next Meeting
{{nextMeetingDate}} at {{nextMeetingTime}}

---
*Notes taken by {{notesTaker}}*"""

REPORT_BODY = """# {{reportType}} Report - {{month}} {{year}}

## Executive Summary

This report covers the period from {{startPeriod}} to {{endPeriod}}.

### Key Metrics

```stats
Revenue|${{revenue}}|{{revenueChange}}%|trophy
Users|{{userCount}}|{{userChange}}%|users
Growth|{{growthRate}}%|{{growthChange}}%|fire
```

### Performance Overview

[progress:{{completionRate}}:Overall Completion]

## Detailed Analysis

{{#sections}}
### {{title}}
{{content}}

**Status**: {{status}}
**Progress**: {{progress}}%

{{/sections}}

## Recommendations

{{#recommendations}}
1. {{item}}
{{/recommendations}}

## Conclusion

{{conclusion}}

---

*Report prepared by {{preparedBy}}*
*Date: {{reportDate}}*"""


def builtin_templates(today: Optional[date] = None) -> List[Template]:
    """The fixed catalog; date defaults are taken from today."""
    today = today or date.today()
    iso_day = today.isoformat()
    return [
        Template(
            id='proposal',
            name='Business Proposal',
            category='Business',
            description='Professional business proposal template',
            content=PROPOSAL_BODY,
            variables=[
                Variable('companyName', 'Your Company'),
                Variable('projectName', 'New Project'),
                Variable('clientName', 'Client Name'),
                Variable('startDate', iso_day, 'date'),
                Variable('duration', '3', 'number'),
                Variable('budget', '50000', 'number'),
                Variable('teamMembers', [
                    {'name': 'John Doe', 'role': 'Project Manager'},
                    {'name': 'Jane Smith', 'role': 'Lead Developer'},
                ], 'list'),
                Variable('deliverable1', 'Initial Design'),
                Variable('deliverable2', 'Development'),
                Variable('deliverable3', 'Testing & Deployment'),
                Variable('authorName', 'Your Name'),
                Variable('date', iso_day),
            ],
        ),
        Template(
            id='meeting-notes',
            name='Meeting Notes',
            category='Business',
            description='Structured meeting notes template',
            content=MEETING_NOTES_BODY,
            variables=[
                Variable('meetingTitle', 'Weekly Team Sync'),
                Variable('date', iso_day, 'date'),
                Variable('time', '10:00 AM'),
                Variable('location', 'Conference Room A'),
                Variable('attendees', [
                    {'name': 'Alice Johnson', 'department': 'Engineering'},
                    {'name': 'Bob Smith', 'department': 'Product'},
                ], 'list'),
                Variable('agendaItems', [
                    {'item': 'Project Status Update'},
                    {'item': 'Budget Review'},
                    {'item': 'Q&A'},
                ], 'list'),
                Variable('discussionNotes', 'Key discussion points here...'),
                Variable('actionItems', [
                    {'task': 'Update project timeline', 'assignee': 'Alice', 'dueDate': 'Next Friday'},
                ], 'list'),
                Variable('nextMeetingDate', 'Next Monday'),
                Variable('nextMeetingTime', '10:00 AM'),
                Variable('notesTaker', 'Your Name'),
            ],
        ),
        Template(
            id='report',
            name='Monthly Report',
            category='Reports',
            description='Monthly performance report template',
            content=REPORT_BODY,
            variables=[
                Variable('reportType', 'Monthly Performance'),
                Variable('month', today.strftime('%B')),
                Variable('year', str(today.year)),
                Variable('startPeriod', 'Start Date', 'date'),
                Variable('endPeriod', 'End Date', 'date'),
                Variable('revenue', '125000', 'number'),
                Variable('revenueChange', '+15'),
                Variable('userCount', '5200', 'number'),
                Variable('userChange', '+8'),
                Variable('growthRate', '23', 'number'),
                Variable('growthChange', '+5'),
                Variable('completionRate', '85', 'number'),
                Variable('sections', [
                    {'title': 'Sales Performance', 'content': 'Sales exceeded targets...',
                     'status': 'On Track', 'progress': 92},
                ], 'list'),
                Variable('recommendations', [
                    {'item': 'Increase marketing budget'},
                    {'item': 'Expand team size'},
                ], 'list'),
                Variable('conclusion', 'Overall performance exceeded expectations...'),
                Variable('preparedBy', 'Your Name'),
                Variable('reportDate', iso_day, 'date'),
            ],
        ),
    ]


class TemplateCatalog:
    """
    Built-in templates are immutable; user templates (ids prefixed "user-")
    are saved to and deleted from the store.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store
        self._builtins = builtin_templates()
        self._user_templates = self._load_user_templates()

    def _load_user_templates(self) -> List[Template]:
        saved = self.store.get(TEMPLATES_STORE_KEY)
        if not saved:
            return []
        try:
            return [Template.from_dict(item) for item in json.loads(saved)]
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Templates: Failed to load user templates: {e}")
            return []

    def _persist(self) -> None:
        self.store.set(TEMPLATES_STORE_KEY, json.dumps([t.to_dict() for t in self._user_templates]))

    def all(self) -> List[Template]:
        return self._builtins + self._user_templates

    def get(self, template_id: str) -> Optional[Template]:
        return next((t for t in self.all() if t.id == template_id), None)

    def save(self, template: Template) -> Template:
        """Save a copy of the template under a fresh user id."""
        template_id = f"{USER_TEMPLATE_PREFIX}{int(time.time() * 1000)}"
        while self.get(template_id) is not None:
            template_id += '0'
        saved = Template(
            id=template_id,
            name=template.name,
            content=template.content,
            variables=[Variable.from_dict(v.to_dict()) for v in template.variables],
            category=template.category,
            description=template.description,
        )
        self._user_templates.append(saved)
        self._persist()
        logger.info(f"Templates: Saved template '{saved.name}' as {saved.id}")
        return saved

    def delete(self, template_id: str) -> bool:
        if not template_id.startswith(USER_TEMPLATE_PREFIX):
            logger.warning(f"Templates: Cannot delete built-in template '{template_id}'")
            return False
        before = len(self._user_templates)
        self._user_templates = [t for t in self._user_templates if t.id != template_id]
        if len(self._user_templates) == before:
            return False
        self._persist()
        logger.info(f"Templates: Deleted template {template_id}")
        return True

    def load(self, template_id: str,
             diagnostics: Optional[List[Diagnostic]] = None) -> Optional[Tuple[str, List[Variable]]]:
        """
        Return the expanded body and a fresh copy of the template's variables.
        """
        template = self.get(template_id)
        if template is None:
            return None
        variables = [Variable.from_dict(v.to_dict()) for v in template.variables]
        return expand(template.content, variables, diagnostics), variables
