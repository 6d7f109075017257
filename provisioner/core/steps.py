"""步骤注册表

单一有序集合保存 (id, name, body)，取代按下标对齐的 ID/名称平行数组。
注册只能追加：已发布的 ID 不会被替换或移动位置。
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator

from provisioner.core.exceptions import ConfigError, StepNotFoundError
from provisioner.core.models import Step, StepBody

logger = logging.getLogger(__name__)


class StepRegistry:
    """有序、只追加的步骤注册表"""

    def __init__(self, steps: list[Step] | None = None) -> None:
        self._steps: list[Step] = []
        self._index: dict[str, int] = {}
        for s in steps or []:
            self.add(s)

    def add(self, step: Step) -> Step:
        if not step.id:
            raise ConfigError("步骤 id 为必填")
        if step.id in self._index:
            raise ConfigError(f"步骤 ID 重复: {step.id}")
        self._index[step.id] = len(self._steps)
        self._steps.append(step)
        logger.debug("步骤已注册: %s", step.id)
        return step

    def register(self, step_id: str, name: str, body: StepBody) -> Step:
        return self.add(Step(id=step_id, name=name, body=body))

    def step(self, step_id: str, name: str) -> Callable[[StepBody], StepBody]:
        """装饰器形式的注册

            @registry.step("01_hw_detect", "01. Hardware Detection")
            def hw_detect(config, ctx): ...
        """
        def decorator(body: StepBody) -> StepBody:
            self.register(step_id, name, body)
            return body
        return decorator

    def get(self, step_id: str) -> Step:
        idx = self._index.get(step_id)
        if idx is None:
            raise StepNotFoundError(step_id)
        return self._steps[idx]

    def index_of(self, step_id: str | None) -> int:
        """步骤下标，未注册返回 -1"""
        if step_id is None:
            return -1
        return self._index.get(step_id, -1)

    def at(self, index: int) -> Step:
        return self._steps[index]

    @property
    def ids(self) -> list[str]:
        return [s.id for s in self._steps]

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._index

    def __iter__(self) -> Iterator[Step]:
        return iter(list(self._steps))

    def __len__(self) -> int:
        return len(self._steps)
