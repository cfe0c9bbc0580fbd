from monostage.stages import collect, install, locate, package, rewrite, staging

__all_stages__ = [
    staging.PREPARE_STAGE,
    staging.MIRROR_STAGE,
    locate.STAGE,
    rewrite.STAGE,
    install.STAGE,
    collect.STAGE,
    package.CREATE_STAGE,
    package.UPDATE_STAGE,
]

__all__ = ["__all_stages__"]
