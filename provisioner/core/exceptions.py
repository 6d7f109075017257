"""统一异常体系

所有业务异常继承 ProvisionerError，CLI 层据此输出友好提示并设置退出码。

传播规则:
  - StepFailure / UserCancellation: 由编排器就地处理，转换为 FAILED / CANCELED
  - PersistenceError: 立即向上抛出，终止当前写状态的操作
  - ValidationCheckError: 由校验引擎就地处理，记为 FAIL
"""

from __future__ import annotations


class ProvisionerError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(ProvisionerError):
    """配置文件、步骤目录或校验规则无效"""

    code = "CONFIG_ERROR"


class StepNotFoundError(ConfigError):
    """指定的步骤 ID 未注册"""

    code = "STEP_NOT_FOUND"

    def __init__(self, step_id: str) -> None:
        super().__init__(f"未定义的步骤: {step_id}")
        self.step_id = step_id


class StepFailure(ProvisionerError):
    """步骤主体执行失败，可重新执行该步骤恢复"""

    code = "STEP_FAILURE"


class ExecutionError(StepFailure):
    """外部命令返回非零退出码"""

    code = "EXECUTION_ERROR"

    def __init__(self, message: str, returncode: int = 1) -> None:
        super().__init__(message)
        self.returncode = returncode


class UserCancellation(ProvisionerError):
    """用户取消（正常流程，不计为错误）"""

    code = "USER_CANCELED"


class PersistenceError(ProvisionerError):
    """状态/配置文件读写失败，已有持久化数据保持不变"""

    code = "PERSISTENCE_ERROR"


class ValidationCheckError(ProvisionerError):
    """校验项无法判定结果"""

    code = "CHECK_ERROR"
