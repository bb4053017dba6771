# Copyright (C) 2016  Chris Lalancette <clalancette@gmail.com>

# This library is free software; you can redistribute it and/or
# modify it under the terms of the GNU Lesser General Public
# License as published by the Free Software Foundation;
# version 2.1 of the License.

# This library is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
# Lesser General Public License for more details.

# You should have received a copy of the GNU Lesser General Public
# License along with this library; if not, write to the Free Software
# Foundation, Inc., 51 Franklin Street, Fifth Floor, Boston, MA  02110-1301  USA

'''
Read-only FAT16 driver: block device, volume, and file/directory streams.
'''

import collections
import datetime
import logging
import os
import struct

log = logging.getLogger(__name__)

SECTOR_SIZE = 512
DIR_ENTRY_SIZE = 32
END_OF_CHAIN = 0xfff8

ATTR_READ_ONLY = 0x01
ATTR_HIDDEN = 0x02
ATTR_SYSTEM = 0x04
ATTR_VOLUME_LABEL = 0x08
ATTR_DIRECTORY = 0x10
ATTR_ARCHIVE = 0x20
ATTR_LONG_NAME = 0x0f

NAME_END = 0x00
NAME_DELETED = 0xe5

PATH_SEPARATOR = '\\'

BOOT_RECORD_FMT = "<3s8sHBHBHHBHHHLLBBBL11s8s448s2s"
DIR_ENTRY_FMT = "<8s3sBBBHHHHHHHL"

_ASCII_UPPER = {c: c - 32 for c in range(ord('a'), ord('z') + 1)}

class PyFatException(Exception):
    '''
    The custom Exception class for PyFat16.  Every error raised by this module
    derives from it.
    '''
    def __init__(self, msg):
        Exception.__init__(self, msg)

class PyFatInvalidArgument(PyFatException):
    '''A required object is missing, not open, or an argument is invalid.'''

class PyFatIOError(PyFatException):
    '''The backing image could not be opened or read.'''

class PyFatOutOfRange(PyFatException):
    '''A sector or seek request falls outside the valid bounds.'''

class PyFatInvalidFormat(PyFatException):
    '''The on-disk structures are not a valid FAT16 volume.'''

class PyFatOutOfMemory(PyFatException):
    '''Memory ran out while building an in-memory structure.'''

class PyFatNotFound(PyFatException):
    '''A path, or one of its components, does not exist.'''

class PyFatNotADirectory(PyFatException):
    '''A directory operation was attempted on something that is not one.'''

class PyFatIsADirectory(PyFatException):
    '''A file operation was attempted on a directory or volume label.'''

def clean_name(name, ext):
    '''
    A function to reconstruct the 8.3 display name of a directory entry from
    its raw name and extension fields.  Trailing spaces are trimmed from both;
    if the extension starts with a space the entry has no extension.

    Parameters:
     name - The 8-byte name field.
     ext - The 3-byte extension field.
    Returns:
     The display name as a string, e.g. 'README.TXT'.
    '''
    out = name.rstrip(b' ').decode('latin-1')
    if ext[:1] == b' ':
        return out

    return out + '.' + ext.rstrip(b' ').decode('latin-1')

def split_path(path):
    '''
    A function to split a backslash-separated path into upper-cased
    components.  Empty components (from leading or doubled separators) are
    dropped.

    Parameters:
     path - The path to split, e.g. '\\DIR\\FILE.TXT'.
    Returns:
     A list of path components.
    '''
    if path is None:
        raise PyFatInvalidArgument("A path must be given")

    return [part.translate(_ASCII_UPPER) for part in path.split(PATH_SEPARATOR) if part]

def _decode_dos_date(date, time_of_day=0):
    year = 1980 + (date >> 9)
    month = (date >> 5) & 0x0f
    day = date & 0x1f
    hour = time_of_day >> 11
    minute = (time_of_day >> 5) & 0x3f
    second = (time_of_day & 0x1f) * 2
    try:
        return datetime.datetime(year, month, day, hour, minute, second)
    except ValueError:
        return None

class BlockDevice(object):
    '''
    The class that represents a sector-addressed backing image.  Every read is
    absolute; no position is carried from one read to the next.
    '''
    def __init__(self):
        self.fp = None
        self.initialized = False

    def open(self, filename):
        '''
        A method to open a backing image for reading.

        Parameters:
         filename - The path to the image file.
        Returns:
         Nothing.
        '''
        if self.initialized:
            raise PyFatInvalidArgument("This device is already open")

        if filename is None:
            raise PyFatInvalidArgument("A filename must be given")

        try:
            fp = open(filename, 'rb')
        except FileNotFoundError:
            raise PyFatNotFound("Could not find image %s" % (filename))
        except OSError as e:
            raise PyFatIOError("Could not open image %s: %s" % (filename, e))

        try:
            fp.seek(0, os.SEEK_END)
            self.file_len = fp.tell()
        except OSError as e:
            fp.close()
            raise PyFatIOError("Could not determine the size of %s: %s" % (filename, e))

        self.fp = fp
        self.sectors = self.file_len // SECTOR_SIZE

        log.debug("opened %s: %d bytes, %d sectors", filename, self.file_len, self.sectors)

        self.initialized = True

    def readinto(self, first_sector, buf, sector_count):
        '''
        A method to read whole sectors into a caller-supplied buffer.

        Parameters:
         first_sector - The first sector to read.
         buf - A writable buffer of at least sector_count * 512 bytes.
         sector_count - The number of sectors to read.
        Returns:
         The number of sectors read.
        '''
        if not self.initialized:
            raise PyFatInvalidArgument("This device is not yet open")

        if buf is None:
            raise PyFatInvalidArgument("A buffer must be given")

        if first_sector < 0 or sector_count < 0 or first_sector + sector_count > self.sectors:
            raise PyFatOutOfRange("Sectors %d-%d are outside of the device (%d sectors)" % (first_sector, first_sector + sector_count, self.sectors))

        length = sector_count * SECTOR_SIZE
        if len(buf) < length:
            raise PyFatInvalidArgument("Buffer is too small for %d sectors" % (sector_count))

        if length == 0:
            return 0

        try:
            self.fp.seek(first_sector * SECTOR_SIZE)
            got = self.fp.readinto(memoryview(buf)[:length])
        except OSError as e:
            raise PyFatIOError("Failed to read sector %d: %s" % (first_sector, e))

        if got != length:
            raise PyFatIOError("Short read at sector %d: expected %d bytes, got %d" % (first_sector, length, got))

        return sector_count

    def read(self, first_sector, sector_count=1):
        '''
        A method to read whole sectors.

        Parameters:
         first_sector - The first sector to read.
         sector_count - The number of sectors to read.
        Returns:
         The bytes read; always sector_count * 512 of them.
        '''
        buf = bytearray(max(sector_count, 0) * SECTOR_SIZE)
        self.readinto(first_sector, buf, sector_count)
        return bytes(buf)

    def close(self):
        '''
        A method to close the backing image.  Once this is called, the object
        is no longer valid.

        Parameters:
         None.
        Returns:
         Nothing.
        '''
        if not self.initialized:
            raise PyFatInvalidArgument("Can only call close on an already open device")

        self.fp.close()
        self.fp = None
        self.initialized = False
        log.debug("closed device")

class FATBootRecord(object):
    '''
    The class that represents the boot record (BPB and extended BPB) found in
    the first sector of a FAT16 volume.
    '''
    def __init__(self):
        self.initialized = False

    def parse(self, instr):
        '''
        Method to parse a boot record out of a string.  The string must be
        exactly 512 bytes long for this to succeed.

        Parameters:
         instr - The string to parse.
        Returns:
         Nothing.
        '''
        if self.initialized:
            raise PyFatInvalidArgument("This boot record is already initialized")

        if len(instr) != SECTOR_SIZE:
            raise PyFatInvalidFormat("Expected %d bytes for the boot record" % (SECTOR_SIZE))

        (self.jmp_boot, self.oem_name, self.bytes_per_sector,
         self.sectors_per_cluster, self.reserved_sectors, self.num_fats,
         self.max_root_dir_entries, self.sector_count, self.media,
         self.sectors_per_fat, self.sectors_per_track, self.num_heads,
         self.hidden_sectors, self.total_sector_count_32, self.drive_num,
         unused1, self.boot_sig, self.volume_id, self.volume_label,
         self.fs_type, self.boot_code, self.signature) = struct.unpack(BOOT_RECORD_FMT, instr)

        if self.boot_sig not in (0x28, 0x29):
            raise PyFatInvalidFormat("Invalid extended boot record signature 0x%02x" % (self.boot_sig))

        if self.signature != b'\x55\xaa':
            raise PyFatInvalidFormat("Invalid boot sector signature")

        if self.bytes_per_sector != SECTOR_SIZE:
            log.warning("boot record claims %d bytes per sector; assuming %d",
                        self.bytes_per_sector, SECTOR_SIZE)

        self.initialized = True

class FATDirectoryEntry(object):
    '''
    The class that represents a single FAT Directory Entry.  Entries are
    snapshots: they keep their own copy of the 32 on-disk bytes.
    '''
    def __init__(self):
        self.initialized = False

    def parse(self, instr):
        '''
        Method to parse a directory entry out of a string.  The string must be
        exactly 32 bytes long for this to succeed.

        Parameters:
         instr - The string to parse.
        Returns:
         Nothing.
        '''
        if self.initialized:
            raise PyFatInvalidArgument("This directory entry is already initialized")

        if len(instr) != DIR_ENTRY_SIZE:
            raise PyFatInvalidFormat("Expected 32 bytes for the directory entry")

        self.raw = bytes(instr)

        (self.filename, self.extension, self.attributes, unused1,
         self.creation_time_tenths, self.creation_time, self.creation_date,
         self.last_access_date, unused2, self.last_write_time,
         self.last_write_date, self.first_logical_cluster,
         self.file_size) = struct.unpack(DIR_ENTRY_FMT, self.raw)

        self.initialized = True

    def _check(self):
        if not self.initialized:
            raise PyFatInvalidArgument("This directory entry is not yet initialized")

    def name(self):
        '''
        A method to get the cleaned 8.3 name of this entry.

        Parameters:
         None.
        Returns:
         The display name, e.g. 'README.TXT'.
        '''
        self._check()
        return clean_name(self.filename, self.extension)

    def is_dir(self):
        '''
        A method to determine whether this entry is a directory.

        Parameters:
         None.
        Returns:
         True if this entry is a directory, False otherwise.
        '''
        self._check()
        return bool(self.attributes & ATTR_DIRECTORY)

    def is_volume_label(self):
        '''
        A method to determine whether this entry is the volume label.

        Parameters:
         None.
        Returns:
         True if this entry is the volume label, False otherwise.
        '''
        self._check()
        return bool(self.attributes & ATTR_VOLUME_LABEL)

    def is_read_only(self):
        '''
        A method to determine whether this entry is read only.

        Parameters:
         None.
        Returns:
         True if this entry is read only, False otherwise.
        '''
        self._check()
        return bool(self.attributes & ATTR_READ_ONLY)

    def is_hidden(self):
        '''
        A method to determine whether this entry is hidden.

        Parameters:
         None.
        Returns:
         True if this entry is hidden, False otherwise.
        '''
        self._check()
        return bool(self.attributes & ATTR_HIDDEN)

    def is_system(self):
        '''
        A method to determine whether this entry is a system entry.

        Parameters:
         None.
        Returns:
         True if this entry is a system entry, False otherwise.
        '''
        self._check()
        return bool(self.attributes & ATTR_SYSTEM)

    def is_archive(self):
        '''
        A method to determine whether this entry is marked for archiving.

        Parameters:
         None.
        Returns:
         True if this entry is marked for archiving, False otherwise.
        '''
        self._check()
        return bool(self.attributes & ATTR_ARCHIVE)

    def creation_datetime(self):
        '''
        A method to decode the creation date and time of this entry.

        Parameters:
         None.
        Returns:
         A datetime, or None if the stored stamp is not a valid date.
        '''
        self._check()
        return _decode_dos_date(self.creation_date, self.creation_time)

    def last_write_datetime(self):
        '''
        A method to decode the last modification date and time of this entry.

        Parameters:
         None.
        Returns:
         A datetime, or None if the stored stamp is not a valid date.
        '''
        self._check()
        return _decode_dos_date(self.last_write_date, self.last_write_time)

    def info(self):
        '''
        A method to build the caller-facing view of this entry.  Following the
        on-disk convention that directories carry no byte size, is_directory is
        derived from a zero size rather than from the attributes.

        Parameters:
         None.
        Returns:
         A FATDirEntryInfo tuple.
        '''
        self._check()
        return FATDirEntryInfo(name=self.name(), size=self.file_size,
                               is_archived=self.is_archive(),
                               is_read_only=self.is_read_only(),
                               is_system=self.is_system(),
                               is_hidden=self.is_hidden(),
                               is_directory=self.file_size == 0)

    def __repr__(self):
        if not self.initialized:
            return 'FATDirectoryEntry()'
        return 'FATDirectoryEntry(%r, attributes=0x%02x, cluster=%d, size=%d)' % (self.name(), self.attributes, self.first_logical_cluster, self.file_size)

FATDirEntryInfo = collections.namedtuple('FATDirEntryInfo',
                                         ['name', 'size', 'is_archived',
                                          'is_read_only', 'is_system',
                                          'is_hidden', 'is_directory'])

def parse_dir_entries(data):
    '''
    A generator over the live directory entries packed into a string.  Stops
    at the first entry whose name starts with a zero byte and skips deleted
    and long-name entries.

    Parameters:
     data - The raw directory bytes.
    Yields:
     FATDirectoryEntry objects, in on-disk order.  A final None is yielded if
     the end-of-directory marker was found, so callers walking several
     clusters know to stop.
    '''
    for offset in range(0, len(data) - DIR_ENTRY_SIZE + 1, DIR_ENTRY_SIZE):
        first = data[offset]
        if first == NAME_END:
            yield None
            return
        if first == NAME_DELETED or data[offset + 11] == ATTR_LONG_NAME:
            continue

        ent = FATDirectoryEntry()
        ent.parse(data[offset:offset + DIR_ENTRY_SIZE])
        yield ent

class FAT16(object):
    '''
    The class that represents the FAT (File Allocation Table) for this
    filesystem.  This class represents the 16-bit FAT.
    '''
    def __init__(self):
        self.initialized = False

    def parse(self, fatstring):
        '''
        Method to parse a FAT out of a string.  The string must hold a whole
        number of 16-bit little-endian entries.

        Parameters:
         fatstring - The string to parse.
        Returns:
         Nothing.
        '''
        if self.initialized:
            raise PyFatInvalidArgument("This object is already initialized")

        if len(fatstring) % 2 != 0:
            raise PyFatInvalidFormat("Invalid length on FAT16 string")

        try:
            self.fat = list(struct.unpack("<%dH" % (len(fatstring) // 2), fatstring))
        except MemoryError:
            raise PyFatOutOfMemory("Out of memory loading the FAT")

        self.initialized = True

    def get_cluster_list(self, first_logical_cluster):
        '''
        A method to get the cluster list, given the first logical cluster in a
        chain.  The chain always holds the first cluster, and ends just before
        the first link at or above the end-of-chain marker.

        Parameters:
         first_logical_cluster - The logical cluster to start with.
        Returns:
         A list containing all of the clusters in this chain.
        '''
        if not self.initialized:
            raise PyFatInvalidArgument("This object is not yet initialized")

        clusters = []
        curr = first_logical_cluster
        while True:
            if curr >= len(self.fat):
                raise PyFatInvalidFormat("Cluster %d is outside of the FAT" % (curr))
            if len(clusters) >= len(self.fat):
                raise PyFatInvalidFormat("Cluster chain starting at %d loops" % (first_logical_cluster))

            clusters.append(curr)
            # Clusters 0 and 1 are reserved and never link onwards.
            if curr < 2 or self.fat[curr] >= END_OF_CHAIN:
                break

            curr = self.fat[curr]

        return clusters

    def __len__(self):
        '''
        A method to get the number of entries in this FAT.

        Parameters:
         None.
        Returns:
         The number of 16-bit entries in the table.
        '''
        return len(self.fat)

class PyFat16(object):
    '''
    The main class to open FAT16 volumes.  A volume borrows its BlockDevice;
    closing the volume never closes the device.
    '''
    def __init__(self):
        self.initialized = False

    def open(self, device, first_sector=0):
        '''
        A method to open up an existing FAT16 volume on a block device.

        Parameters:
         device - The open BlockDevice that holds the volume.
         first_sector - The sector holding the volume's boot record.
        Returns:
         Nothing.
        '''
        if self.initialized:
            raise PyFatInvalidArgument("This object is already initialized")

        if device is None:
            raise PyFatInvalidArgument("A device must be given")

        boot = FATBootRecord()
        boot.parse(device.read(first_sector, 1))

        fat = FAT16()
        try:
            fat.parse(device.read(boot.reserved_sectors, boot.sectors_per_fat))
        except MemoryError:
            raise PyFatOutOfMemory("Out of memory loading the FAT")

        root_dir_sectors = boot.max_root_dir_entries * DIR_ENTRY_SIZE // SECTOR_SIZE
        root_dir_start = boot.reserved_sectors + boot.num_fats * boot.sectors_per_fat

        root_entries = []
        try:
            root_dir = device.read(root_dir_start, root_dir_sectors)
            for ent in parse_dir_entries(root_dir):
                if ent is None:
                    break
                root_entries.append(ent)
        except MemoryError:
            raise PyFatOutOfMemory("Out of memory loading the root directory")

        # Uses root_entries // 16, not the rounded-up root directory span.
        first_data_sector = (boot.reserved_sectors + boot.hidden_sectors +
                             boot.num_fats * boot.sectors_per_fat +
                             boot.max_root_dir_entries // 16)

        self.device = device
        self.boot_record = boot
        self.fat = fat
        self.root_dir = root_dir
        self.root_entries = root_entries
        self.sectors_per_cluster = boot.sectors_per_cluster
        self.bytes_per_cluster = boot.sectors_per_cluster * SECTOR_SIZE
        self.root_dir_start = root_dir_start
        self.first_data_sector = first_data_sector

        # Stands in for the root directory in path lookups.
        self.root = FATDirectoryEntry()
        self.root.parse(b' ' * 11 + bytes([ATTR_DIRECTORY]) + b'\x00' * 20)

        log.debug("opened FAT16 volume at sector %d: %d bytes/cluster, FAT of %d entries, root at %d, data at %d, %d root entries",
                  first_sector, self.bytes_per_cluster, len(fat),
                  root_dir_start, first_data_sector, len(root_entries))

        self.initialized = True

    def _check(self):
        if not self.initialized:
            raise PyFatInvalidArgument("This object is not yet initialized")

    def cluster_to_sector(self, cluster):
        '''
        A method to translate a cluster number into its first sector.

        Parameters:
         cluster - The cluster number.
        Returns:
         The sector number.
        '''
        return self.first_data_sector + (cluster - 2) * self.sectors_per_cluster

    def get_cluster_chain(self, first_logical_cluster):
        '''
        A method to resolve the cluster chain for an object on this volume.

        Parameters:
         first_logical_cluster - The first cluster of the object.
        Returns:
         A list of (cluster, sector) tuples in chain order.
        '''
        self._check()

        try:
            chain = [(cluster, self.cluster_to_sector(cluster))
                     for cluster in self.fat.get_cluster_list(first_logical_cluster)]
        except MemoryError:
            raise PyFatOutOfMemory("Out of memory building the chain for cluster %d" % (first_logical_cluster))

        log.debug("chain for cluster %d has %d clusters", first_logical_cluster, len(chain))
        return chain

    def read_cluster(self, sector):
        '''
        A method to read one whole cluster starting at the given sector.

        Parameters:
         sector - The first sector of the cluster.
        Returns:
         The bytes of the cluster.
        '''
        return self.device.read(sector, self.sectors_per_cluster)

    def iter_dir_entries(self, first_logical_cluster):
        '''
        A generator over the live entries of a subdirectory.  The
        cluster chain is read one cluster at a time, and the walk stops for
        the whole chain at the first end-of-directory marker.

        Parameters:
         first_logical_cluster - The first cluster of the subdirectory.
        Yields:
         FATDirectoryEntry objects, in on-disk order.
        '''
        for cluster, sector in self.get_cluster_chain(first_logical_cluster):
            for ent in parse_dir_entries(self.read_cluster(sector)):
                if ent is None:
                    return
                yield ent

    def find_record(self, path):
        '''
        A method to find a FAT directory entry based on a given path.  The path
        should be of the form '\\DIR1\\FILE.TXT'; components are compared
        upper-cased against the cleaned 8.3 names.

        Parameters:
         path - The path to find in the filesystem.
        Returns:
         The FATDirectoryEntry for the path, or self.root if the path denotes
         the root directory.
        '''
        self._check()

        parts = split_path(path)

        current = self.root
        for index, part in enumerate(parts):
            if not current.is_dir():
                # A file cannot have children.
                raise PyFatNotFound("Could not find path %s" % (path))

            if current is self.root:
                candidates = self.root_entries
            else:
                candidates = self.iter_dir_entries(current.first_logical_cluster)

            found = None
            for ent in candidates:
                if ent.name() == part:
                    found = ent
                    break

            if found is None:
                raise PyFatNotFound("Could not find path %s" % (path))

            if found.is_dir() and found.first_logical_cluster == 0:
                # '..' entries pointing at the root use cluster 0.
                current = self.root
            else:
                current = found

        return current

    def open_file(self, path):
        '''
        A method to open a file on this volume for reading.

        Parameters:
         path - The path to the file, of the form '\\DIR1\\FILE.TXT'.
        Returns:
         An open FATFile.
        '''
        fp = FATFile()
        fp.open(self, path)
        return fp

    def open_dir(self, path):
        '''
        A method to open a directory on this volume for enumeration.

        Parameters:
         path - The path to the directory; '\\' is the root.
        Returns:
         An open FATDirectory.
        '''
        dirp = FATDirectory()
        dirp.open(self, path)
        return dirp

    def list_dir(self, path):
        '''
        A method to list all of the children of this particular path.  Note that
        the specified path must be a directory.

        Parameters:
         path - The fully qualified path to the record, of the form "\\FOO\\BAR".
        Yields:
         A FATDirEntryInfo for each entry, in on-disk order.
        '''
        dirp = self.open_dir(path)
        try:
            while True:
                info = dirp.next()
                if info is None:
                    break
                yield info
        finally:
            dirp.close()

    def get_and_write_file(self, fat_path, local_path):
        '''
        A method to get the data from a file on the FAT filesystem.
        The path should be of the form '\\DIR1\\FILE'.

        Parameters:
         fat_path - The path on the FAT filesystem of the file data to get.
         local_path - The local_path in which to write the data.
        Returns:
         Nothing.
        '''
        fp = self.open_file(fat_path)
        try:
            with open(local_path, 'wb') as outfp:
                while True:
                    data = fp.read(self.bytes_per_cluster)
                    if not data:
                        break
                    outfp.write(data)
        finally:
            fp.close()

    def close(self):
        '''
        A method to close out this object.  Once this is called, the object is
        no longer valid.  The underlying BlockDevice stays open.

        Closing the volume while a FATDirectory opened on its root is still in
        use is a caller error; that directory must be closed first.

        Parameters:
         None.
        Returns:
         Nothing.
        '''
        if not self.initialized:
            raise PyFatInvalidArgument("Can only call close on an already open object")

        self.fat = None
        self.root_entries = None
        self.root_dir = None
        self.device = None

        self.initialized = False
        log.debug("closed volume")

class FATFile(object):
    '''
    The class that represents an open file on a FAT16 volume.  The cluster
    chain is resolved once at open time and reads go one cluster at a time.
    '''
    def __init__(self):
        self.initialized = False

    def open(self, volume, path):
        '''
        A method to open a file for reading.

        Parameters:
         volume - The open PyFat16 volume holding the file.
         path - The path to the file.
        Returns:
         Nothing.
        '''
        if self.initialized:
            raise PyFatInvalidArgument("This file is already open")

        if volume is None:
            raise PyFatInvalidArgument("A volume must be given")

        entry = volume.find_record(path)
        if entry.is_dir() or entry.is_volume_label():
            raise PyFatIsADirectory("%s is not a regular file" % (path))

        self.clusters = volume.get_cluster_chain(entry.first_logical_cluster)
        self.volume = volume
        self.name = entry.name()
        self.attributes = entry.attributes
        self.size = entry.file_size
        self.read_head = 0

        self.initialized = True

    def _check(self):
        if not self.initialized:
            raise PyFatInvalidArgument("This file is not open")

    def readinto(self, buf):
        '''
        A method to read from the current position into a caller-supplied
        buffer.  At most len(buf) bytes are copied, and never past the end of
        the file even if the last cluster holds more data.

        Parameters:
         buf - A writable buffer.
        Returns:
         The number of bytes copied; 0 at the end of the file.
        '''
        self._check()

        if buf is None:
            raise PyFatInvalidArgument("A buffer must be given")

        out = memoryview(buf)
        bytes_per_cluster = self.volume.bytes_per_cluster
        copied = 0
        while copied < len(out) and self.read_head < self.size:
            index, offset = divmod(self.read_head, bytes_per_cluster)
            if index >= len(self.clusters):
                raise PyFatInvalidFormat("File %s is larger than its cluster chain" % (self.name))

            data = self.volume.read_cluster(self.clusters[index][1])

            thisread = min(bytes_per_cluster - offset, len(out) - copied,
                           self.size - self.read_head)
            out[copied:copied + thisread] = data[offset:offset + thisread]

            copied += thisread
            self.read_head += thisread

        return copied

    def read(self, size=-1):
        '''
        A method to read from the current position.

        Parameters:
         size - The most bytes to read; everything left if negative.
        Returns:
         The bytes read; empty at the end of the file.
        '''
        self._check()

        left = self.size - self.read_head
        if size < 0 or size > left:
            size = left

        buf = bytearray(size)
        got = self.readinto(buf)
        return bytes(buf[:got])

    def seek(self, offset, whence=os.SEEK_SET):
        '''
        A method to move the read position.  A position outside of the file
        leaves the current position unchanged.

        Parameters:
         offset - The offset to move by.
         whence - os.SEEK_SET, os.SEEK_CUR or os.SEEK_END.
        Returns:
         The new position.
        '''
        self._check()

        if whence == os.SEEK_SET:
            pos = offset
        elif whence == os.SEEK_CUR:
            pos = self.read_head + offset
        elif whence == os.SEEK_END:
            pos = self.size + offset
        else:
            raise PyFatInvalidArgument("Invalid whence %r" % (whence))

        if pos < 0 or pos > self.size:
            raise PyFatOutOfRange("Position %d is outside of %s (%d bytes)" % (pos, self.name, self.size))

        self.read_head = pos
        return pos

    def tell(self):
        '''
        A method to get the current read position.

        Parameters:
         None.
        Returns:
         The offset of the next byte to be read.
        '''
        self._check()
        return self.read_head

    def close(self):
        '''
        A method to close this file.  Once this is called, the object is no
        longer valid.

        Parameters:
         None.
        Returns:
         Nothing.
        '''
        self._check()

        self.clusters = None
        self.volume = None
        self.initialized = False

class FATDirectory(object):
    '''
    The class that represents an open directory on a FAT16 volume.  The root
    directory borrows the volume's entry list; a subdirectory owns the list it
    collected from its cluster chain.
    '''
    ENTRIES_BORROWED_ROOT = 1
    ENTRIES_OWNED = 2

    def __init__(self):
        self.initialized = False

    def open(self, volume, path):
        '''
        A method to open a directory for enumeration.

        Parameters:
         volume - The open PyFat16 volume holding the directory.
         path - The path to the directory; '\\' is the root.
        Returns:
         Nothing.
        '''
        if self.initialized:
            raise PyFatInvalidArgument("This directory is already open")

        if volume is None:
            raise PyFatInvalidArgument("A volume must be given")

        entry = volume.find_record(path)
        if entry is volume.root:
            self.entries = volume.root_entries
            self.entry_source = self.ENTRIES_BORROWED_ROOT
        else:
            if not entry.is_dir() or entry.is_volume_label():
                raise PyFatNotADirectory("%s is not a directory" % (path))

            try:
                entries = list(volume.iter_dir_entries(entry.first_logical_cluster))
            except MemoryError:
                raise PyFatOutOfMemory("Out of memory listing %s" % (path))

            log.debug("collected %d entries from %s", len(entries), path)
            self.entries = entries
            self.entry_source = self.ENTRIES_OWNED

        self.volume = volume
        self.read_head = 0

        self.initialized = True

    def next(self):
        '''
        A method to get the next entry in this directory.

        Parameters:
         None.
        Returns:
         A FATDirEntryInfo, or None once every entry has been returned.
        '''
        if not self.initialized:
            raise PyFatInvalidArgument("This directory is not open")

        if self.read_head == len(self.entries):
            return None

        entry = self.entries[self.read_head]
        self.read_head += 1
        return entry.info()

    def close(self):
        '''
        A method to close this directory.  Once this is called, the object is
        no longer valid.

        Parameters:
         None.
        Returns:
         Nothing.
        '''
        if not self.initialized:
            raise PyFatInvalidArgument("This directory is not open")

        if self.entry_source == self.ENTRIES_OWNED:
            del self.entries[:]
        self.entries = None

        self.volume = None
        self.initialized = False
