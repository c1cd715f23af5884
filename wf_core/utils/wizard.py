"""
多步表单校验
每一步是一个 pydantic 模型，按步骤序号索引；与前端渲染无关
"""
from typing import Any, Dict, Mapping, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError


class StepWizard:
    """按步骤序号校验字段子集，最终合并为完整请求"""

    def __init__(self, steps: Mapping[int, Type[BaseModel]], target: Type[BaseModel]):
        if sorted(steps) != list(range(len(steps))):
            raise ValueError("wizard steps must be numbered 0..n-1")
        self.steps = dict(steps)
        self.target = target

    @property
    def step_count(self) -> int:
        return len(self.steps)

    def validate_step(self, index: int, data: Dict[str, Any]) -> BaseModel:
        """校验单步数据"""
        model = self.steps.get(index)
        if model is None:
            raise ValidationError(
                code="INVALID_WIZARD_STEP",
                detail=f"Step {index} does not exist (0..{self.step_count - 1})"
            )
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"]) or "payload"
            raise ValidationError(
                code="WIZARD_STEP_INVALID",
                detail=f"Step {index}: {field}: {first['msg']}"
            )

    def assemble(self, payloads: Mapping[int, Dict[str, Any]]) -> BaseModel:
        """逐步校验后合并为目标模型"""
        missing = [i for i in self.steps if i not in payloads]
        if missing:
            raise ValidationError(
                code="WIZARD_INCOMPLETE",
                detail=f"Missing wizard steps: {missing}"
            )

        merged: Dict[str, Any] = {}
        for index in sorted(self.steps):
            step = self.validate_step(index, payloads[index])
            merged.update(step.model_dump())
        return self.target.model_validate(merged)
