# trustci_pipeline.py
# Release matrix for exclave: every listed target is one job; commented-out
# entries are not built.
from __future__ import annotations

from trustci import phases, pipeline, target


def define_pipeline():
    return pipeline(
        # # Android
        # target("aarch64-linux-android", disable_tests=True),
        # target("arm-linux-androideabi", disable_tests=True),
        # target("armv7-linux-androideabi", disable_tests=True),
        # target("i686-linux-android", disable_tests=True),
        # target("x86_64-linux-android", disable_tests=True),

        # # iOS
        # target("aarch64-apple-ios", os="osx", disable_tests=True),
        # target("armv7-apple-ios", os="osx", disable_tests=True),
        # target("x86_64-apple-ios", os="osx", disable_tests=True),

        # Linux
        target("aarch64-unknown-linux-gnu"),
        target("arm-unknown-linux-gnueabi"),
        target("armv7-unknown-linux-gnueabihf"),
        target("i686-unknown-linux-gnu"),
        target("i686-unknown-linux-musl"),
        target("mips-unknown-linux-gnu"),
        target("mips64-unknown-linux-gnuabi64"),
        target("mips64el-unknown-linux-gnuabi64"),
        target("mipsel-unknown-linux-gnu"),
        target("powerpc-unknown-linux-gnu"),
        target("powerpc64-unknown-linux-gnu"),
        target("powerpc64le-unknown-linux-gnu"),
        target("s390x-unknown-linux-gnu", disable_tests=True),
        target("x86_64-unknown-linux-gnu"),
        target("x86_64-unknown-linux-musl"),

        # OSX
        target("i686-apple-darwin", os="osx"),
        target("x86_64-apple-darwin", os="osx"),

        # *BSD
        target("i686-unknown-freebsd", disable_tests=True),
        target("x86_64-unknown-freebsd", disable_tests=True),
        # target("x86_64-unknown-netbsd", disable_tests=True),

        # Windows
        target("x86_64-pc-windows-gnu", disable_tests=True),

        # Testing other channels; only the stable build of a triple is released
        target("x86_64-unknown-linux-gnu", rust="nightly"),
        # target("x86_64-apple-darwin", os="osx", rust="nightly"),

        crate_name="exclave",
        steps=phases(
            before_install="rustup self update",
            install="sh ci/install.sh",
            script="bash ci/script.sh",
            before_deploy="sh ci/before_deploy.sh",
        ),
        cache_dirs=["~/.cargo"],
    )
