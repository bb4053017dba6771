import struct

SECTOR = 512

README_DATA = b"Hello, FAT16!\n"
BIG_DATA = bytes(bytearray(i % 251 for i in range(1500)))
FILE_DATA = b"".join(b"line %04d of the file in DIR\n" % i for i in range(40))
DEEP_DATA = b"deep\x00\x01\x02binary" * 3

def dir_record(name, ext, attributes, first_cluster, size, date=0, time=0):
    if not isinstance(name, bytes):
        name = name.encode('latin-1')
    if not isinstance(ext, bytes):
        ext = ext.encode('latin-1')
    return struct.pack("<8s3sBBBHHHHHHHL", name.ljust(8, b' '),
                       ext.ljust(3, b' '), attributes, 0, 0, time, date,
                       date, 0, time, date, first_cluster, size)

class ImageDir(list):
    '''
    A list of 32-byte records for one directory of a FAT16Image, along with
    the clusters that hold it (None for the root).
    '''
    def __init__(self, clusters=None):
        list.__init__(self)
        self.clusters = clusters

    def first_cluster(self):
        if self.clusters is None:
            return 0
        return self.clusters[0]

class FAT16Image(object):
    '''
    A small FAT16 image builder for the tests.  It lays out the volume the
    same way pyfat16 reads it: boot record, FAT copies, root directory, data.
    '''
    def __init__(self, sectors_per_cluster=1, root_entries=32,
                 reserved_sectors=1, num_fats=2, sectors_per_fat=1,
                 total_sectors=128, hidden_sectors=0):
        self.sectors_per_cluster = sectors_per_cluster
        self.root_entries = root_entries
        self.reserved_sectors = reserved_sectors
        self.num_fats = num_fats
        self.sectors_per_fat = sectors_per_fat
        self.total_sectors = total_sectors
        self.hidden_sectors = hidden_sectors
        self.boot_sig = 0x29
        self.signature = b'\x55\xaa'

        self.fat = [0] * (sectors_per_fat * SECTOR // 2)
        self.fat[0] = 0xfff8
        self.fat[1] = 0xffff
        self.next_free = 2

        self.root = ImageDir()
        self.dirs = []
        self.data = {}

    @property
    def bytes_per_cluster(self):
        return self.sectors_per_cluster * SECTOR

    @property
    def root_dir_start(self):
        return self.reserved_sectors + self.num_fats * self.sectors_per_fat

    @property
    def first_data_sector(self):
        return (self.reserved_sectors + self.hidden_sectors +
                self.num_fats * self.sectors_per_fat + self.root_entries // 16)

    def cluster_sector(self, cluster):
        return self.first_data_sector + (cluster - 2) * self.sectors_per_cluster

    def alloc(self, count):
        clusters = list(range(self.next_free, self.next_free + count))
        self.next_free += count
        return clusters

    def link(self, clusters):
        for curr, nxt in zip(clusters, clusters[1:]):
            self.fat[curr] = nxt
        self.fat[clusters[-1]] = 0xffff

    def add_file(self, parent, name, ext, data, attributes=0x20,
                 clusters=None, slack=b'\x00'):
        bpc = self.bytes_per_cluster
        if clusters is None:
            count = -(-len(data) // bpc)
            clusters = self.alloc(count)

        first = 0
        if clusters:
            self.link(clusters)
            padded = data + slack * (len(clusters) * bpc - len(data))
            for index, cluster in enumerate(clusters):
                self.data[cluster] = padded[index * bpc:(index + 1) * bpc]
            first = clusters[0]

        parent.append(dir_record(name, ext, attributes, first, len(data)))
        return first

    def add_dir(self, parent, name, ext='', clusters=None, count=1):
        if clusters is None:
            clusters = self.alloc(count)
        self.link(clusters)

        newdir = ImageDir(clusters)
        newdir.append(dir_record('.', '', 0x10, clusters[0], 0))
        newdir.append(dir_record('..', '', 0x10, parent.first_cluster(), 0))
        parent.append(dir_record(name, ext, 0x10, clusters[0], 0))
        self.dirs.append(newdir)
        return newdir

    def build(self):
        img = bytearray(self.total_sectors * SECTOR)

        img[0:SECTOR] = struct.pack("<3s8sHBHBHHBHHHLLBBBL11s8s448s2s",
                                    b'\xeb\x3c\x90', b'pyfat16 ', SECTOR,
                                    self.sectors_per_cluster,
                                    self.reserved_sectors, self.num_fats,
                                    self.root_entries, self.total_sectors,
                                    0xf8, self.sectors_per_fat, 32, 2,
                                    self.hidden_sectors, 0, 0x80, 0,
                                    self.boot_sig, 0x1234abcd,
                                    b'TESTVOL    ', b'FAT16   ',
                                    b'\x00' * 448, self.signature)

        fatbytes = struct.pack("<%dH" % (len(self.fat)), *self.fat)
        for copy in range(self.num_fats):
            offset = (self.reserved_sectors + copy * self.sectors_per_fat) * SECTOR
            img[offset:offset + len(fatbytes)] = fatbytes

        rootbytes = b''.join(self.root)
        assert(len(rootbytes) <= self.root_entries * 32)
        offset = self.root_dir_start * SECTOR
        img[offset:offset + len(rootbytes)] = rootbytes

        bpc = self.bytes_per_cluster
        for d in self.dirs:
            dirbytes = b''.join(d)
            assert(len(dirbytes) <= len(d.clusters) * bpc)
            dirbytes = dirbytes.ljust(len(d.clusters) * bpc, b'\x00')
            for index, cluster in enumerate(d.clusters):
                self.data[cluster] = dirbytes[index * bpc:(index + 1) * bpc]

        for cluster, chunk in self.data.items():
            offset = self.cluster_sector(cluster) * SECTOR
            img[offset:offset + len(chunk)] = chunk

        return bytes(img)

    def write(self, path):
        with open(path, 'wb') as outfp:
            outfp.write(self.build())

def make_standard_image(**kwargs):
    '''
    The image most tests run against:

     \\TESTVOL           volume label
     \\README.TXT        one cluster
     (deleted entry)
     (long name fragment)
     \\DIR\\             two clusters
        .  ..  F00 .. F13  FILE.TXT (in the second cluster, fragmented)
        NESTED\\DEEP.BIN
        EMPTY             zero bytes, cluster 0
     \\BIG.BIN           1500 bytes, garbage after the end of the file
     \\A                 no extension
     \\SYS.DAT           read-only, hidden, system
     \\STOP\\            end marker in the first cluster, LATE.TXT after it
     (end marker)
     \\GHOST.TXT         stale entry after the end marker
    '''
    img = FAT16Image(**kwargs)

    img.root.append(dir_record('TESTVOL', '', 0x08, 0, 0))
    img.add_file(img.root, 'README', 'TXT', README_DATA)
    img.root.append(dir_record(b'\xe5ELETED', 'TXT', 0x20, 0, 10))
    img.root.append(dir_record('LFNFRAG', '', 0x0f, 0, 0))

    subdir = img.add_dir(img.root, 'DIR', count=2)
    for i in range(14):
        img.add_file(subdir, 'F%02d' % (i), '', b'')

    # Every other cluster, walking backwards, so the chain is fragmented.
    needed = -(-len(FILE_DATA) // img.bytes_per_cluster)
    pool = img.alloc(needed * 2)
    img.add_file(subdir, 'FILE', 'TXT', FILE_DATA, clusters=pool[::-2])

    nested = img.add_dir(subdir, 'NESTED')
    img.add_file(nested, 'DEEP', 'BIN', DEEP_DATA)
    subdir.append(dir_record(b'\xe5GONE', 'TXT', 0x20, 0, 1))
    img.add_file(subdir, 'EMPTY', '', b'')

    img.add_file(img.root, 'BIG', 'BIN', BIG_DATA, slack=b'X')
    img.add_file(img.root, 'A', '', b'a\n')
    img.add_file(img.root, 'SYS', 'DAT', b'system', attributes=0x07)

    stop = img.add_dir(img.root, 'STOP', count=2)
    stop.extend([b'\x00' * 32] * 14)
    img.add_file(stop, 'LATE', 'TXT', b'late')

    img.root.append(b'\x00' * 32)
    img.root.append(dir_record('GHOST', 'TXT', 0x20, 0, 5))

    return img

def write_image(tmpdir, img, name="fat16.img"):
    path = str(tmpdir.join(name))
    img.write(path)
    return path

def internal_check_boot_record(vol, img):
    assert(vol.boot_record.bytes_per_sector == 512)
    assert(vol.boot_record.sectors_per_cluster == img.sectors_per_cluster)
    assert(vol.boot_record.reserved_sectors == img.reserved_sectors)
    assert(vol.boot_record.num_fats == img.num_fats)
    assert(vol.boot_record.max_root_dir_entries == img.root_entries)
    assert(vol.boot_record.sectors_per_fat == img.sectors_per_fat)
    assert(vol.boot_record.hidden_sectors == img.hidden_sectors)
    assert(vol.boot_record.boot_sig == img.boot_sig)
    assert(vol.boot_record.oem_name == b'pyfat16 ')
    assert(vol.boot_record.volume_label == b'TESTVOL    ')
    assert(vol.boot_record.fs_type == b'FAT16   ')

def internal_check_geometry(vol, img):
    assert(vol.bytes_per_cluster == img.sectors_per_cluster * 512)
    assert(vol.root_dir_start == img.root_dir_start)
    assert(vol.first_data_sector == img.first_data_sector)

def internal_check_info(info, name, size, is_directory, is_archived=False,
                        is_read_only=False, is_system=False, is_hidden=False):
    assert(info.name == name)
    assert(info.size == size)
    assert(info.is_directory == is_directory)
    assert(info.is_archived == is_archived)
    assert(info.is_read_only == is_read_only)
    assert(info.is_system == is_system)
    assert(info.is_hidden == is_hidden)

def check_standard_root(infos):
    assert([info.name for info in infos] == ['TESTVOL', 'README.TXT', 'DIR',
                                             'BIG.BIN', 'A', 'SYS.DAT',
                                             'STOP'])
    internal_check_info(infos[0], 'TESTVOL', 0, True)
    internal_check_info(infos[1], 'README.TXT', len(README_DATA), False, is_archived=True)
    internal_check_info(infos[2], 'DIR', 0, True)
    internal_check_info(infos[3], 'BIG.BIN', len(BIG_DATA), False, is_archived=True)
    internal_check_info(infos[4], 'A', 2, False, is_archived=True)
    internal_check_info(infos[5], 'SYS.DAT', 6, False, is_read_only=True,
                        is_system=True, is_hidden=True)
    internal_check_info(infos[6], 'STOP', 0, True)

def check_standard_dir(infos):
    names = [info.name for info in infos]
    assert(names == ['.', '..'] + ['F%02d' % (i) for i in range(14)] +
           ['FILE.TXT', 'NESTED', 'EMPTY'])
    internal_check_info(infos[16], 'FILE.TXT', len(FILE_DATA), False, is_archived=True)
    internal_check_info(infos[17], 'NESTED', 0, True)
    # Zero-byte files look like directories in the entry view.
    internal_check_info(infos[18], 'EMPTY', 0, True, is_archived=True)
