"""xenbuild - XenServer 虚拟机构建编排

按顺序执行一组可失败的构建步骤（创建 VM、上传镜像、获取控制台端口 ...），
通过共享状态包在步骤间传递数据，并保证逆序清理每个已执行步骤创建的资源。
"""

__version__ = "0.1.0"
