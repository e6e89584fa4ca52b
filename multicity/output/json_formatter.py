"""JSON output formatter -- valid JSON suitable for piping to jq."""

from __future__ import annotations

import json

from multicity.models import SegmentView


class JsonFormatter:
    """Format segment views as pretty-printed JSON."""

    def format_views(self, views: list[SegmentView]) -> str:
        data = {
            "type": "segment_results",
            "segments": [
                {
                    **view.model_dump(mode="json", exclude={"results"}),
                    "result_count": len(view.results),
                    "results": [
                        r.model_dump(mode="json", exclude={"raw"}) for r in view.visible_results
                    ],
                }
                for view in views
            ],
        }
        return json.dumps(data, indent=2)
